"""Tool dispatch — validate arguments, run the handler, report the outcome."""

from __future__ import annotations

import asyncio
import inspect
import json
from typing import Any

from loguru import logger
from pydantic import BaseModel, ValidationError

from agentloop.agent.events import TOOL_COMPLETE, TOOL_ERROR, TOOL_START
from agentloop.agent.session import RunContext
from agentloop.agent.tools import Tool, ToolRegistry, ToolResult
from agentloop.core.errors import AgentCancelledError
from agentloop.core.models import ToolCall, ToolMessage, content_to_text

INVALID_ARGUMENTS = "Tool arguments are not valid"


def parse_tool_arguments(tool: Tool, raw: str) -> BaseModel | None:
    """Decode and validate raw JSON arguments against ``tool.parameters``.

    A blank string means ``{}``. Raises ``json.JSONDecodeError`` or
    ``ValidationError`` on bad input.
    """
    if tool.parameters is None:
        return None
    text = (raw or "").strip()
    data = json.loads(text) if text else {}
    return tool.parameters.model_validate(data)


class ToolDispatcher:
    """Executes tool calls against a session's registry.

    Tool-level problems (unknown tool, bad arguments, handler errors) are
    turned into ToolMessage content; only cancellation escapes.

    Parameters
    ----------
    registry : ToolRegistry
        Tools active in the session.
    run_sync_in_thread : bool
        Run plain-function handlers via ``asyncio.to_thread``.
    """

    def __init__(self, registry: ToolRegistry, run_sync_in_thread: bool = True):
        self.registry = registry
        self.run_sync_in_thread = run_sync_in_thread

    async def dispatch(
        self,
        call: ToolCall,
        context: RunContext,
        metadata: dict[str, list[Any]] | None = None,
    ) -> ToolMessage:
        """Execute one tool call and return its ToolMessage.

        Successful results append their metadata to ``metadata[call.name]``.
        """
        call_id = call.tool_call_id or ""
        tool = self.registry.get(call.name)
        if tool is None:
            logger.warning(f"Unknown tool requested: {call.name}")
            context.events.emit(TOOL_ERROR, name=call.name, error=f"Unknown tool: {call.name}")
            return ToolMessage(
                content=f"Error: '{call.name}' is not a valid tool",
                tool_call_id=call_id,
                name=call.name,
                args_was_valid=False,
            )

        try:
            params = parse_tool_arguments(tool, call.arguments)
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Invalid arguments for {call.name}: {e}")
            context.events.emit(TOOL_ERROR, name=call.name, error=e)
            return ToolMessage(
                content=INVALID_ARGUMENTS,
                tool_call_id=call_id,
                name=call.name,
                args_was_valid=False,
            )

        context.events.emit(TOOL_START, name=call.name, arguments=params)
        logger.debug(f"Executing tool: {call.name}({call.arguments[:200]})")

        try:
            result = await self._invoke(tool, params, context)
        except AgentCancelledError:
            raise
        except Exception as e:
            logger.error(f"Tool error: {call.name} → {e}")
            context.events.emit(TOOL_ERROR, name=call.name, error=e)
            return ToolMessage(
                content=f"Error executing tool: {e}",
                tool_call_id=call_id,
                name=call.name,
                args_was_valid=True,
            )

        text = content_to_text(result.content)
        logger.debug(f"Tool result: {call.name} → {text[:100]}")
        context.events.emit(TOOL_COMPLETE, name=call.name, result=text, success=True)

        if metadata is not None and result.metadata is not None:
            metadata.setdefault(call.name, []).append(result.metadata)

        return ToolMessage(
            content=result.content,
            tool_call_id=call_id,
            name=call.name,
            args_was_valid=True,
        )

    async def _invoke(self, tool: Tool, params: Any, context: RunContext) -> ToolResult:
        handler = tool.handler
        if inspect.iscoroutinefunction(handler):
            result = await handler(params, context)
        elif self.run_sync_in_thread:
            result = await asyncio.to_thread(handler, params, context)
        else:
            result = handler(params, context)
        if inspect.isawaitable(result):
            result = await result
        if not isinstance(result, ToolResult):
            result = ToolResult(content=str(result))
        return result
