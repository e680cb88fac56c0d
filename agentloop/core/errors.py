"""Exception hierarchy for the agent core."""

from __future__ import annotations


class AgentError(Exception):
    """Base class for all agentloop errors."""


class ConfigurationError(AgentError):
    """Invalid agent or session configuration.

    Raised synchronously at construction or session initialization,
    before any turn runs. Never recovered.
    """


class ContextOverflowError(AgentError):
    """The model client rejected a request for exceeding its context window."""

    def __init__(self, message: str = "Context window exceeded"):
        super().__init__(message)


class AgentCancelledError(AgentError):
    """A run observed its cancellation token and stopped."""

    def __init__(self, message: str = "Agent run was cancelled"):
        super().__init__(message)


class ToolExecutionError(AgentError):
    """A tool or tool provider failed while executing."""

    def __init__(self, message: str, tool_name: str = ""):
        super().__init__(message)
        self.tool_name = tool_name


class DisposalError(ExceptionGroup):
    """One or more session resources failed to dispose.

    Raised only after every cleanup callback has run.
    """
