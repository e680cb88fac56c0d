"""TurnRunner — drives the compiled turn graph for one session."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from loguru import logger

from agentloop.agent.events import RUN_COMPLETE, RUN_ERROR, RUN_START
from agentloop.agent.graph import create_graph
from agentloop.agent.session import RunContext
from agentloop.agent.state import TurnState
from agentloop.agent.tools import ToolRegistry
from agentloop.core.metadata import aggregate_metadata
from agentloop.core.models import ChatMessage, UserMessage

if TYPE_CHECKING:
    from agentloop.agent.agent import Agent


@dataclass
class RunResult:
    """Outcome of one run.

    ``finish_params`` is ``None`` when the turn budget ran out before the
    finish tool was called with valid arguments.
    """

    finish_params: Any
    message_history: list[list[ChatMessage]] = field(default_factory=list)
    run_metadata: dict[str, Any] = field(default_factory=dict)


class TurnRunner:
    """
    Session-scoped turn controller.

    Flow:
        1. Wrap the task as messages
        2. graph.ainvoke(state) with the RunContext in ``configurable``
        3. Seal the final group and aggregate metadata into a RunResult
    """

    def __init__(self, agent: Agent, registry: ToolRegistry, system_prompt: str):
        self.agent = agent
        self.registry = registry
        self._graph = create_graph(agent, registry, system_prompt)

    async def run(self, task: str | list[ChatMessage], context: RunContext) -> RunResult:
        """Run turns until finish or the turn budget; emits run:* events."""
        events = context.events
        start = time.monotonic()
        events.emit(RUN_START, task=task, depth=context.depth)
        try:
            result = await self._run(task, context)
        except (Exception, asyncio.CancelledError) as e:
            logger.error(f"Run failed for {self.agent.name}: {e!r}")
            events.emit(RUN_ERROR, error=e, duration=time.monotonic() - start)
            raise
        events.emit(
            RUN_COMPLETE,
            result=result,
            duration=time.monotonic() - start,
            output_dir=context.session.output_dir,
        )
        return result

    async def _run(self, task: str | list[ChatMessage], context: RunContext) -> RunResult:
        max_turns = self.agent.max_turns
        initial: list[ChatMessage] = (
            [UserMessage(content=task)] if isinstance(task, str) else list(task)
        )
        state: TurnState = {
            "input": initial,
            "messages": [],
            "group": [],
            "history": [],
            "metadata": {},
            "turn": 0,
            "max_turns": max_turns,
            "finished": False,
            "finish_params": None,
            "needs_summary": False,
            "context_used": 0.0,
        }
        final = await self._graph.ainvoke(
            state,
            config={
                "configurable": {"context": context},
                # load_context + up to 3 steps per turn
                "recursion_limit": 3 * max_turns + 5,
            },
        )

        history = [*final["history"], final["group"]]
        return RunResult(
            finish_params=final["finish_params"],
            message_history=history,
            run_metadata=aggregate_metadata(final["metadata"]),
        )
