"""Message model — chat messages, tool calls and token usage."""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter


# ════════════════════════════════════════════════════════════
# CONTENT BLOCKS
# ════════════════════════════════════════════════════════════


class ImageBlock(BaseModel):
    """Image payload (base64 data URL)."""

    type: Literal["image"] = "image"
    data: str


class VideoBlock(BaseModel):
    """Video payload (base64 data URL)."""

    type: Literal["video"] = "video"
    data: str


class AudioBlock(BaseModel):
    """Audio payload (base64 data URL)."""

    type: Literal["audio"] = "audio"
    data: str


MediaBlock = Annotated[
    Union[ImageBlock, VideoBlock, AudioBlock], Field(discriminator="type")
]
ContentBlock = Union[str, MediaBlock]
Content = Union[str, list[ContentBlock]]


def content_to_text(content: Content) -> str:
    """Flatten content to plain text (media blocks become placeholders)."""
    if isinstance(content, str):
        return content
    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        else:
            parts.append(f"[{block.type}]")
    return "\n".join(parts)


# ════════════════════════════════════════════════════════════
# MESSAGES
# ════════════════════════════════════════════════════════════


class TokenUsage(BaseModel):
    """Token counts reported by the model for one generation."""

    input: int = Field(default=0, ge=0)
    output: int = Field(default=0, ge=0)
    reasoning: int = Field(default=0, ge=0)


class ToolCall(BaseModel):
    """A tool invocation requested by the assistant.

    ``arguments`` is the raw JSON string emitted by the model; it is only
    decoded by the dispatcher.
    """

    name: str
    arguments: str = ""
    tool_call_id: str | None = None


class SystemMessage(BaseModel):
    role: Literal["system"] = "system"
    content: Content


class UserMessage(BaseModel):
    role: Literal["user"] = "user"
    content: Content


class AssistantMessage(BaseModel):
    role: Literal["assistant"] = "assistant"
    content: Content = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    token_usage: TokenUsage | None = None


class ToolMessage(BaseModel):
    role: Literal["tool"] = "tool"
    content: Content
    tool_call_id: str = ""
    name: str
    args_was_valid: bool = True


ChatMessage = Annotated[
    Union[SystemMessage, UserMessage, AssistantMessage, ToolMessage],
    Field(discriminator="role"),
]

_chat_messages = TypeAdapter(list[ChatMessage])


def parse_messages(data: list[dict]) -> list[ChatMessage]:
    """Validate a list of raw message dicts into typed messages."""
    return _chat_messages.validate_python(data)


def dump_messages(messages: list[ChatMessage]) -> list[dict]:
    """Serialize typed messages to JSON-ready dicts."""
    return _chat_messages.dump_python(messages, mode="json")
