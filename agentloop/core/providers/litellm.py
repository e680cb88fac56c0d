"""LiteLLM client — model client over litellm.acompletion."""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

import litellm
from loguru import logger

from agentloop.core.errors import ContextOverflowError
from agentloop.core.models import (
    AssistantMessage,
    AudioBlock,
    ChatMessage,
    Content,
    ImageBlock,
    SystemMessage,
    TokenUsage,
    ToolCall,
    ToolMessage,
    UserMessage,
    VideoBlock,
    content_to_text,
)
from agentloop.core.providers.base import ModelClient

if TYPE_CHECKING:
    from agentloop.agent.tools.base import Tool
    from agentloop.core.config.schema import Config

# Suppress litellm noise
litellm.suppress_debug_info = True


def setup_provider(config: Config) -> None:
    """Set env vars for LiteLLM from config. Call once at startup."""
    for env, val in config.providers.env_vars().items():
        # an exported key in the real environment wins
        os.environ.setdefault(env, val)


class LiteLLMClient(ModelClient):
    """LiteLLM-backed model client (any provider LiteLLM routes to).

    Parameters
    ----------
    model : str
        LiteLLM model name, e.g. ``openai/gpt-4o``.
    max_context_tokens : int
        Context budget used for the summarization cutoff.
    temperature, max_tokens : optional
        Sampling temperature and output token limit.
    num_retries : int
        Retries delegated to LiteLLM for transient failures.
    """

    def __init__(
        self,
        model: str,
        max_context_tokens: int = 128_000,
        temperature: float = 1.0,
        max_tokens: int = 8192,
        num_retries: int = 3,
        timeout: float | None = None,
        api_base: str | None = None,
    ) -> None:
        self._model = model
        self._max_context_tokens = max_context_tokens
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.num_retries = num_retries
        self.timeout = timeout
        self.api_base = api_base

    @classmethod
    def from_config(cls, config: Config) -> LiteLLMClient:
        setup_provider(config)
        return cls(
            model=config.model.model,
            max_context_tokens=config.model.max_context_tokens,
            temperature=config.model.temperature,
            max_tokens=config.model.max_tokens,
            num_retries=config.model.num_retries,
            timeout=config.model.timeout,
            api_base=config.get_api_base(),
        )

    @property
    def model_slug(self) -> str:
        return self._model

    @property
    def max_context_tokens(self) -> int:
        return self._max_context_tokens

    async def generate(
        self,
        messages: list[ChatMessage],
        tools: Mapping[str, Tool],
    ) -> AssistantMessage:
        """Call LiteLLM and return an AssistantMessage."""
        kwargs: dict[str, Any] = {
            "model": self._model,
            "messages": [to_litellm_message(m) for m in messages],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "num_retries": self.num_retries,
        }
        if tools:
            kwargs["tools"] = [t.definition() for t in tools.values()]
            kwargs["tool_choice"] = "auto"
        if self.api_base:
            kwargs["api_base"] = self.api_base
        if self.timeout is not None:
            kwargs["timeout"] = self.timeout

        try:
            response = await litellm.acompletion(**kwargs)
        except litellm.ContextWindowExceededError as e:
            logger.warning(f"Context window exceeded for {self._model}: {e}")
            raise ContextOverflowError(str(e)) from e
        except Exception as e:
            logger.error(f"LLM error: {e}")
            raise
        return self._to_assistant_message(response)

    @staticmethod
    def _to_assistant_message(response: Any) -> AssistantMessage:
        """Convert litellm response to AssistantMessage (arguments kept raw)."""
        choice = response.choices[0]
        msg = choice.message

        tool_calls = []
        if getattr(msg, "tool_calls", None):
            for tc in msg.tool_calls:
                args = tc.function.arguments
                if args is None:
                    args = ""
                elif not isinstance(args, str):
                    args = json.dumps(args)
                tool_calls.append(
                    ToolCall(name=tc.function.name, arguments=args, tool_call_id=tc.id)
                )

        usage = getattr(response, "usage", None)
        token_usage = None
        if usage is not None:
            details = getattr(usage, "completion_tokens_details", None)
            reasoning = getattr(details, "reasoning_tokens", 0) if details else 0
            token_usage = TokenUsage(
                input=getattr(usage, "prompt_tokens", 0) or 0,
                output=getattr(usage, "completion_tokens", 0) or 0,
                reasoning=reasoning or 0,
            )

        return AssistantMessage(
            content=msg.content or "",
            tool_calls=tool_calls,
            token_usage=token_usage,
        )


# ── Message conversion ──────────────────────────────────────


def to_litellm_message(msg: ChatMessage) -> dict[str, Any]:
    """Convert a chat message to the OpenAI chat format LiteLLM expects."""
    if isinstance(msg, SystemMessage):
        return {"role": "system", "content": content_to_text(msg.content)}
    elif isinstance(msg, UserMessage):
        return {"role": "user", "content": to_litellm_content(msg.content)}
    elif isinstance(msg, AssistantMessage):
        d: dict[str, Any] = {"role": "assistant", "content": content_to_text(msg.content)}
        if msg.tool_calls:
            d["tool_calls"] = [
                {
                    "id": tc.tool_call_id,
                    "type": "function",
                    "function": {"name": tc.name, "arguments": tc.arguments or "{}"},
                }
                for tc in msg.tool_calls
            ]
        return d
    elif isinstance(msg, ToolMessage):
        return {
            "role": "tool",
            "tool_call_id": msg.tool_call_id,
            "name": msg.name,
            "content": content_to_text(msg.content),
        }
    raise TypeError(f"Unsupported message type: {type(msg).__name__}")


def to_litellm_content(content: Content) -> str | list[dict[str, Any]]:
    """Convert content blocks to OpenAI content parts."""
    if isinstance(content, str):
        return content

    parts: list[dict[str, Any]] = []
    for block in content:
        if isinstance(block, str):
            parts.append({"type": "text", "text": block})
        elif isinstance(block, ImageBlock):
            parts.append({"type": "image_url", "image_url": {"url": block.data}})
        elif isinstance(block, AudioBlock):
            mime, _, data = block.data.partition(";base64,")
            fmt = mime.rsplit("/", 1)[-1] if data else "mp3"
            parts.append(
                {"type": "input_audio", "input_audio": {"data": data or block.data, "format": fmt}}
            )
        elif isinstance(block, VideoBlock):
            parts.append({"type": "file", "file": {"file_data": block.data}})
    return parts
