"""Context summarization — compress history when the context budget runs low."""

from __future__ import annotations

from loguru import logger

from agentloop.agent.context import (
    MESSAGE_SUMMARIZER_BRIDGE_TEMPLATE,
    MESSAGE_SUMMARIZER_PROMPT,
    SUMMARY_REQUEST,
)
from agentloop.core.models import (
    AssistantMessage,
    ChatMessage,
    SystemMessage,
    TokenUsage,
    UserMessage,
    content_to_text,
)
from agentloop.core.providers.base import ModelClient


def context_usage(usage: TokenUsage | None, max_context_tokens: int) -> float:
    """Fraction of the context budget used by one generation."""
    if usage is None or max_context_tokens <= 0:
        return 0.0
    return (usage.input + usage.output) / max_context_tokens


def split_task_context(
    messages: list[ChatMessage],
) -> tuple[list[ChatMessage], list[ChatMessage]]:
    """Split at the first assistant message into (task_context, tail).

    Without an assistant message (or with one at index 0) only the first
    message is kept as task context.
    """
    idx = next(
        (i for i, m in enumerate(messages) if isinstance(m, AssistantMessage)),
        -1,
    )
    if idx > 0:
        return list(messages[:idx]), list(messages[idx:])
    return list(messages[:1]), list(messages[1:])


class ContextSummarizer:
    """Replaces everything after the task context with a model-written summary."""

    def __init__(self, client: ModelClient):
        self.client = client

    async def summarize(self, messages: list[ChatMessage]) -> list[ChatMessage]:
        """Return ``task_context + [bridge user message]``.

        Errors from the model client propagate; summarization is never retried.
        """
        task_context, tail = split_task_context(messages)
        request: list[ChatMessage] = [
            SystemMessage(content=MESSAGE_SUMMARIZER_PROMPT),
            *tail,
            UserMessage(content=SUMMARY_REQUEST),
        ]
        response = await self.client.generate(request, {})
        summary = content_to_text(response.content)
        logger.debug(f"Summarized {len(tail)} messages into {len(summary)} chars")

        bridge = UserMessage(content=MESSAGE_SUMMARIZER_BRIDGE_TEMPLATE.format(summary=summary))
        return [*task_context, bridge]
