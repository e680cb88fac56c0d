"""Base model client — generation contract used by the turn loop."""

from __future__ import annotations

import abc
from collections.abc import Mapping
from typing import TYPE_CHECKING

from agentloop.core.models import AssistantMessage, ChatMessage

if TYPE_CHECKING:
    from agentloop.agent.tools.base import Tool


class ModelClient(abc.ABC):
    """Abstract base for model clients.

    Implementations must raise ``ContextOverflowError`` when the backend
    rejects a request for exceeding the context window, so the turn loop can
    tell it apart from transport failures.
    """

    @property
    @abc.abstractmethod
    def model_slug(self) -> str:
        """Model identifier."""

    @property
    @abc.abstractmethod
    def max_context_tokens(self) -> int:
        """Context budget in tokens."""

    @abc.abstractmethod
    async def generate(
        self,
        messages: list[ChatMessage],
        tools: Mapping[str, Tool],
    ) -> AssistantMessage:
        """Generate the next assistant message."""
        ...
