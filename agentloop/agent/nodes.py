"""Graph nodes — load_context, generate, execute_tools, summarize."""

from __future__ import annotations

import json
import uuid
from typing import TYPE_CHECKING, Any

from langchain_core.runnables import RunnableConfig
from langgraph.graph import END
from loguru import logger
from pydantic import ValidationError

from agentloop.agent.dispatcher import ToolDispatcher, parse_tool_arguments
from agentloop.agent.events import (
    MESSAGE_ASSISTANT,
    MESSAGE_TOOL,
    SUMMARIZATION_COMPLETE,
    SUMMARIZATION_START,
    TURN_COMPLETE,
    TURN_START,
)
from agentloop.agent.session import RunContext
from agentloop.agent.state import TurnState
from agentloop.agent.summarizer import ContextSummarizer, context_usage
from agentloop.agent.tools import Tool, ToolRegistry
from agentloop.core.errors import ContextOverflowError
from agentloop.core.metadata import TokenUsageMetadata
from agentloop.core.models import (
    AssistantMessage,
    ChatMessage,
    SystemMessage,
    content_to_text,
)
from agentloop.core.providers.base import ModelClient

if TYPE_CHECKING:
    from agentloop.agent.agent import Agent

TOKEN_USAGE_KEY = "token_usage"


def get_context(config: RunnableConfig) -> RunContext:
    """RunContext passed through ``config["configurable"]["context"]``."""
    return config["configurable"]["context"]


def make_nodes(agent: Agent, registry: ToolRegistry, system_prompt: str):
    """
    Create node functions closed over the agent, its session registry and
    the session's system prompt.

    Returns dict of {node_name: callable} for graph registration.
    """
    client: ModelClient = agent.client
    finish_tool: Tool | None = agent.finish_tool
    cutoff = agent.context_summarization_cutoff
    dispatcher = ToolDispatcher(registry, run_sync_in_thread=agent.run_sync_in_thread)
    summarizer = ContextSummarizer(client)

    async def _summarize(
        state: TurnState,
        messages: list[ChatMessage],
        group: list[ChatMessage],
        ctx: RunContext,
        context_used: float,
    ) -> dict[str, Any]:
        """Seal the current group and replace the active list with a summary."""
        ctx.check_cancelled()
        ctx.events.emit(
            SUMMARIZATION_START,
            percent_used=context_used,
            message_count=len(messages),
        )
        history = [*state["history"], group]
        summarized = await summarizer.summarize(messages)
        ctx.events.emit(
            SUMMARIZATION_COMPLETE,
            message_count=len(summarized),
            original_count=sum(len(g) for g in history),
        )
        return {
            "messages": summarized,
            "group": list(summarized),
            "history": history,
            "needs_summary": False,
        }

    async def load_context(state: TurnState, config: RunnableConfig) -> dict[str, Any]:
        """Prepend the system prompt and set up metadata collection."""
        messages = [SystemMessage(content=system_prompt), *state["input"]]
        metadata: dict[str, list[Any]] = {TOKEN_USAGE_KEY: []}
        for name in registry:
            metadata[name] = []
        logger.debug(f"Run context: {len(messages)} messages, {len(registry)} tools")
        return {"messages": messages, "group": list(messages), "metadata": metadata}

    async def generate(state: TurnState, config: RunnableConfig) -> dict[str, Any]:
        """Call the model once; on context overflow summarize and retry once."""
        ctx = get_context(config)
        ctx.check_cancelled()
        ctx.events.emit(TURN_START, turn=state["turn"], max_turns=state["max_turns"])

        update: dict[str, Any] = {}
        messages = state["messages"]
        group = state["group"]
        tools = registry.as_mapping()
        try:
            assistant = await client.generate(messages, tools)
        except ContextOverflowError:
            if not any(isinstance(m, AssistantMessage) for m in messages):
                raise
            logger.warning("Context overflow, summarizing and retrying once")
            update = await _summarize(state, messages, group, ctx, 1.0)
            messages, group = update["messages"], update["group"]
            assistant = await client.generate(messages, tools)

        if any(tc.tool_call_id is None for tc in assistant.tool_calls):
            assistant = assistant.model_copy(update={
                "tool_calls": [
                    tc if tc.tool_call_id else tc.model_copy(
                        update={"tool_call_id": f"call_{uuid.uuid4().hex[:24]}"}
                    )
                    for tc in assistant.tool_calls
                ]
            })

        metadata = dict(state["metadata"])
        if assistant.token_usage is not None:
            metadata[TOKEN_USAGE_KEY] = [
                *metadata.get(TOKEN_USAGE_KEY, []),
                TokenUsageMetadata.from_token_usage(assistant.token_usage),
            ]

        if assistant.tool_calls:
            names = [tc.name for tc in assistant.tool_calls]
            logger.debug(f"LLM tool calls: {names}")
        else:
            snippet = content_to_text(assistant.content)[:80]
            logger.debug(f"LLM response (no tools): {snippet!r}")

        if assistant.content or assistant.tool_calls:
            ctx.events.emit(
                MESSAGE_ASSISTANT,
                content=assistant.content,
                tool_calls=list(assistant.tool_calls),
            )

        return {
            **update,
            "messages": [*messages, assistant],
            "group": [*group, assistant],
            "metadata": metadata,
        }

    async def execute_tools(state: TurnState, config: RunnableConfig) -> dict[str, Any]:
        """Dispatch the last assistant message's tool calls in order."""
        ctx = get_context(config)
        assistant = state["messages"][-1]
        metadata = {k: list(v) for k, v in state["metadata"].items()}

        finished = state["finished"]
        finish_params = state["finish_params"]
        tool_messages = []
        for call in assistant.tool_calls:
            ctx.check_cancelled()
            tool_message = await dispatcher.dispatch(call, ctx, metadata)
            tool_messages.append(tool_message)
            ctx.events.emit(
                MESSAGE_TOOL,
                name=tool_message.name,
                content=content_to_text(tool_message.content),
                args_was_valid=tool_message.args_was_valid,
            )
            # First finish call with valid arguments ends the run after this turn
            if not finished and finish_tool is not None and call.name == finish_tool.name:
                try:
                    finish_params = parse_tool_arguments(finish_tool, call.arguments)
                    finished = True
                except (json.JSONDecodeError, ValidationError):
                    logger.debug("Finish called with invalid arguments, continuing")

        turn = state["turn"] + 1
        usage = assistant.token_usage
        ctx.events.emit(TURN_COMPLETE, turn=state["turn"], token_usage=usage)

        context_used = context_usage(usage, client.max_context_tokens)
        needs_summary = (
            not finished
            and turn < state["max_turns"]
            and context_used >= cutoff
        )
        return {
            "messages": [*state["messages"], *tool_messages],
            "group": [*state["group"], *tool_messages],
            "metadata": metadata,
            "turn": turn,
            "finished": finished,
            "finish_params": finish_params,
            "needs_summary": needs_summary,
            "context_used": context_used,
        }

    async def summarize(state: TurnState, config: RunnableConfig) -> dict[str, Any]:
        """Summarize the active list before the next turn."""
        ctx = get_context(config)
        return await _summarize(
            state, state["messages"], state["group"], ctx, state["context_used"]
        )

    return {
        "load_context": load_context,
        "generate": generate,
        "execute_tools": execute_tools,
        "summarize": summarize,
    }


def should_continue(state: TurnState) -> str:
    """Conditional edge: after execute_tools, stop, summarize or generate."""
    if state["finished"]:
        return END
    if state["turn"] >= state["max_turns"]:
        logger.warning(f"Max turns reached ({state['max_turns']}) without finish")
        return END
    if state["needs_summary"]:
        return "summarize"
    return "generate"
