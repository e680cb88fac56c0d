"""TurnState — LangGraph state for one agent run."""

from __future__ import annotations

from typing import Any, TypedDict

from agentloop.core.models import ChatMessage


class TurnState(TypedDict):
    """
    Plain keys, no reducers: every node returns fresh values for what it
    changes and never mutates the lists it received.
    """

    input: list[ChatMessage]  # caller's task messages
    messages: list[ChatMessage]  # active list sent to the model
    group: list[ChatMessage]  # current summarization epoch
    history: list[list[ChatMessage]]  # sealed epochs
    metadata: dict[str, list[Any]]  # per-tool metadata + token_usage
    turn: int
    max_turns: int
    finished: bool
    finish_params: Any
    needs_summary: bool
    context_used: float
