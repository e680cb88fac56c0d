"""Agent — configuration facade over sessions, the turn loop and sub-agents."""

from __future__ import annotations

import asyncio
import re
from pathlib import Path
from typing import TYPE_CHECKING, Any

from agentloop.agent.context import ContextBuilder
from agentloop.agent.session import AgentSession
from agentloop.agent.sub_agent import make_sub_agent_tool
from agentloop.agent.tools import (
    SIMPLE_FINISH_TOOL,
    CodeExecToolProvider,
    LocalCodeExecToolProvider,
    Tool,
    ToolProvider,
)
from agentloop.core.errors import ConfigurationError
from agentloop.core.models import ChatMessage
from agentloop.core.providers.base import ModelClient

if TYPE_CHECKING:
    from agentloop.agent.runner import RunResult
    from agentloop.core.config.schema import Config

AGENT_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{1,128}$")
DEFAULT_MAX_TURNS = 30
DEFAULT_CONTEXT_SUMMARIZATION_CUTOFF = 0.7


class Agent:
    """
    An LLM-driven agent: a model client, tools and a finish tool.

    Parameters
    ----------
    client : ModelClient
        Model used for every generation (and for summaries).
    name : str
        Alphanumeric, ``_`` or ``-``, 1-128 chars. Also the tool name when
        the agent is used as a sub-agent.
    max_turns : int
        Turn budget per run.
    system_prompt : str, optional
        Appended to the base system prompt.
    tools : list[Tool | ToolProvider], optional
        At most one of them may be a ``CodeExecToolProvider``.
    finish_tool : Tool, optional
        Completion signal; ``None`` runs until ``max_turns``.
    context_summarization_cutoff : float
        Fraction of ``client.max_context_tokens`` that triggers summarization.
    run_sync_in_thread : bool
        Run plain-function tool handlers in a worker thread.
    output_dir : str, optional
        Default session output directory for finish paths.
    log_events : bool
        Default for attaching the loguru event logger to sessions.

    Raises
    ------
    ConfigurationError
        Invalid name, budget, cutoff or tool list.
    """

    def __init__(
        self,
        client: ModelClient,
        name: str = "agent",
        max_turns: int = DEFAULT_MAX_TURNS,
        system_prompt: str | None = None,
        tools: list[Tool | ToolProvider] | None = None,
        finish_tool: Tool | None = SIMPLE_FINISH_TOOL,
        context_summarization_cutoff: float = DEFAULT_CONTEXT_SUMMARIZATION_CUTOFF,
        run_sync_in_thread: bool = True,
        output_dir: str | None = "./output",
        log_events: bool = True,
    ) -> None:
        if not isinstance(name, str) or not AGENT_NAME_PATTERN.match(name):
            raise ConfigurationError(
                "Agent name must be alphanumeric (with _ or -) and 1-128 characters long"
            )
        if max_turns < 1:
            raise ConfigurationError(f"max_turns must be >= 1, got {max_turns}")
        if not 0.0 < context_summarization_cutoff <= 1.0:
            raise ConfigurationError(
                "context_summarization_cutoff must be in (0, 1], "
                f"got {context_summarization_cutoff}"
            )

        tools = list(tools or [])
        for item in tools:
            if not isinstance(item, (Tool, ToolProvider)):
                raise ConfigurationError(
                    f"Unsupported tool type: {type(item).__name__} (expected Tool or ToolProvider)"
                )
        exec_envs = [t for t in tools if isinstance(t, CodeExecToolProvider)]
        if len(exec_envs) > 1:
            raise ConfigurationError(
                f"Agent can only have one CodeExecToolProvider, found {len(exec_envs)}"
            )

        self.client = client
        self.name = name
        self.max_turns = max_turns
        self.system_prompt = system_prompt
        self.tools = tools
        self.finish_tool = finish_tool
        self.context_summarization_cutoff = context_summarization_cutoff
        self.run_sync_in_thread = run_sync_in_thread
        self.output_dir = output_dir
        self.log_events = log_events
        self.context = ContextBuilder(system_prompt)

    @classmethod
    def from_config(
        cls,
        config: Config,
        tools: list[Tool | ToolProvider] | None = None,
        finish_tool: Tool | None = SIMPLE_FINISH_TOOL,
        client: ModelClient | None = None,
    ) -> Agent:
        """Build an agent from a loaded ``Config``.

        Without ``tools`` the agent gets a local code-exec environment built
        from ``config.code_exec``. Without ``client`` a ``LiteLLMClient`` is
        created from ``config.model``.
        """
        if client is None:
            from agentloop.core.providers.litellm import LiteLLMClient

            client = LiteLLMClient.from_config(config)
        if tools is None:
            tools = [LocalCodeExecToolProvider.from_config(config)]
        return cls(
            client=client,
            name=config.agent.name,
            max_turns=config.agent.max_turns,
            system_prompt=config.agent.system_prompt,
            tools=tools,
            finish_tool=finish_tool,
            context_summarization_cutoff=config.agent.context_summarization_cutoff,
            run_sync_in_thread=config.agent.run_sync_in_thread,
            output_dir=config.session.output_dir,
            log_events=config.session.log_events,
        )

    def clone(self, **overrides: Any) -> Agent:
        """Copy of this agent with some constructor arguments replaced."""
        kwargs: dict[str, Any] = {
            "client": self.client,
            "name": self.name,
            "max_turns": self.max_turns,
            "system_prompt": self.system_prompt,
            "tools": self.tools,
            "finish_tool": self.finish_tool,
            "context_summarization_cutoff": self.context_summarization_cutoff,
            "run_sync_in_thread": self.run_sync_in_thread,
            "output_dir": self.output_dir,
            "log_events": self.log_events,
        }
        kwargs.update(overrides)
        return Agent(**kwargs)

    def session(
        self,
        output_dir: str | None = None,
        input_files: str | list[str] | None = None,
        skills_dir: str | Path | None = None,
        log_events: bool | None = None,
        *,
        depth: int = 0,
        parent_exec_env: CodeExecToolProvider | None = None,
    ) -> AgentSession:
        """Create a session; use it as ``async with agent.session(...) as s``."""
        return AgentSession(
            self,
            output_dir=output_dir or self.output_dir,
            input_files=input_files,
            skills_dir=skills_dir,
            log_events=self.log_events if log_events is None else log_events,
            depth=depth,
            parent_exec_env=parent_exec_env,
        )

    async def run(
        self,
        task: str | list[ChatMessage],
        cancel: asyncio.Event | None = None,
        **session_kwargs: Any,
    ) -> RunResult:
        """Run once inside a session opened and disposed around the call."""
        async with self.session(**session_kwargs) as session:
            return await session.run(task, cancel=cancel)

    def to_tool(
        self,
        description: str | None = None,
        system_prompt: str | None = None,
        reuse_session: bool = False,
    ) -> Tool:
        """Expose this agent as a sub-agent tool named after the agent."""
        return make_sub_agent_tool(
            self,
            description=description,
            system_prompt=system_prompt,
            reuse_session=reuse_session,
        )

    def __repr__(self) -> str:
        return f"Agent(name={self.name!r}, model={self.client.model_slug!r}, tools={len(self.tools)})"
