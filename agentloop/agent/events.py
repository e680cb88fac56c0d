"""EventBus — synchronous in-process lifecycle notifications."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from agentloop.core.models import content_to_text

# Event names
RUN_START = "run:start"
RUN_COMPLETE = "run:complete"
RUN_ERROR = "run:error"
TURN_START = "turn:start"
TURN_COMPLETE = "turn:complete"
MESSAGE_ASSISTANT = "message:assistant"
MESSAGE_TOOL = "message:tool"
TOOL_START = "tool:start"
TOOL_COMPLETE = "tool:complete"
TOOL_ERROR = "tool:error"
SUMMARIZATION_START = "summarization:start"
SUMMARIZATION_COMPLETE = "summarization:complete"


@dataclass
class AgentEvent:
    """A single lifecycle notification."""

    name: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


EventHandler = Callable[[AgentEvent], Any]


class EventBus:
    """Name-keyed subscriber lists plus catch-all subscribers.

    Handlers run synchronously inside ``emit``. A handler that raises is
    logged and skipped; it never affects the emitter or other handlers.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}
        self._any: list[EventHandler] = []

    def on(self, name: str, handler: EventHandler) -> Callable[[], None]:
        """Subscribe to one event name. Returns an unsubscribe callable."""
        self._handlers.setdefault(name, []).append(handler)
        return lambda: self.off(name, handler)

    def on_any(self, handler: EventHandler) -> Callable[[], None]:
        """Subscribe to every event. Returns an unsubscribe callable."""
        self._any.append(handler)
        return lambda: self.off_any(handler)

    def off(self, name: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(name, [])
        if handler in handlers:
            handlers.remove(handler)

    def off_any(self, handler: EventHandler) -> None:
        if handler in self._any:
            self._any.remove(handler)

    def emit(self, name: str, /, **data: Any) -> AgentEvent:
        event = AgentEvent(name=name, data=data)
        for handler in [*self._handlers.get(name, []), *self._any]:
            try:
                handler(event)
            except Exception as e:
                logger.warning(f"Event handler for '{name}' failed: {e}")
        return event


def attach_event_logger(bus: EventBus, agent_name: str, depth: int = 0) -> Callable[[], None]:
    """Render lifecycle events through loguru, indented by agent depth.

    Returns a callable that detaches the logger.
    """
    pad = "  " * depth
    tag = f"{pad}[{agent_name}]"

    def _log(event: AgentEvent) -> None:
        d = event.data
        name = event.name
        if name == RUN_START:
            logger.info(f"{tag} run started (depth={depth})")
        elif name == RUN_COMPLETE:
            result = d.get("result")
            finished = getattr(result, "finish_params", None) is not None
            status = "finished" if finished else "stopped without finish"
            logger.info(f"{tag} run {status} in {d.get('duration', 0.0):.2f}s")
        elif name == RUN_ERROR:
            logger.error(f"{tag} run failed: {d.get('error')}")
        elif name == TURN_START:
            logger.debug(f"{tag} turn {d.get('turn', 0) + 1}/{d.get('max_turns')}")
        elif name == TURN_COMPLETE:
            usage = d.get("token_usage")
            if usage is not None:
                logger.debug(f"{tag} tokens in={usage.input} out={usage.output}")
        elif name == MESSAGE_ASSISTANT:
            text = content_to_text(d.get("content", ""))
            if text:
                logger.debug(f"{tag} assistant: {text[:200]!r}")
            calls = [tc.name for tc in d.get("tool_calls") or []]
            if calls:
                logger.debug(f"{tag} tool calls: {calls}")
        elif name == TOOL_START:
            logger.info(f"{tag} → {d.get('name')}")
        elif name == TOOL_COMPLETE:
            logger.debug(f"{tag} ← {d.get('name')}: {str(d.get('result', ''))[:100]}")
        elif name == TOOL_ERROR:
            logger.warning(f"{tag} tool {d.get('name')} error: {d.get('error')}")
        elif name == SUMMARIZATION_START:
            logger.info(f"{tag} summarizing context ({d.get('percent_used', 0.0):.0%} used)")
        elif name == SUMMARIZATION_COMPLETE:
            logger.info(f"{tag} context summarized to {d.get('message_count')} messages")

    return bus.on_any(_log)
