"""Shared fixtures — scripted model client and message builders."""

from __future__ import annotations

import json
from types import SimpleNamespace

import pytest

from agentloop.agent.context import MESSAGE_SUMMARIZER_PROMPT
from agentloop.core.models import AssistantMessage, SystemMessage, TokenUsage, ToolCall
from agentloop.core.providers.base import ModelClient


class ScriptedClient(ModelClient):
    """Returns queued AssistantMessages (or raises queued exceptions) in order.

    Summarization requests are answered separately with ``summary`` and
    recorded in ``summary_calls``.
    """

    def __init__(self, responses=None, max_context_tokens=100_000, summary="Summary so far."):
        self.responses = list(responses or [])
        self.summary = summary
        self.calls = []
        self.tool_names = []
        self.summary_calls = []
        self._max_context_tokens = max_context_tokens

    @property
    def model_slug(self):
        return "scripted/test"

    @property
    def max_context_tokens(self):
        return self._max_context_tokens

    async def generate(self, messages, tools):
        first = messages[0] if messages else None
        if isinstance(first, SystemMessage) and first.content == MESSAGE_SUMMARIZER_PROMPT:
            self.summary_calls.append(list(messages))
            return AssistantMessage(content=self.summary)
        self.calls.append(list(messages))
        self.tool_names.append(list(tools))
        if not self.responses:
            return AssistantMessage(content="nothing left to say")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def call(name, args=None, call_id=None, raw=None):
    """ToolCall with JSON-encoded args (or a raw argument string)."""
    arguments = raw if raw is not None else json.dumps(args or {})
    return ToolCall(name=name, arguments=arguments, tool_call_id=call_id or f"id_{name}")


def reply(*tool_calls, content="", usage=None):
    """AssistantMessage with optional tool calls and (input, output) usage."""
    token_usage = TokenUsage(input=usage[0], output=usage[1]) if usage else None
    return AssistantMessage(content=content, tool_calls=list(tool_calls), token_usage=token_usage)


def finish(reason="done", paths=None, call_id="id_finish"):
    args = {"reason": reason}
    if paths is not None:
        args["paths"] = paths
    return call("finish", args, call_id=call_id)


@pytest.fixture
def make_client():
    return ScriptedClient


@pytest.fixture
def msg():
    """Message builders: ``msg.call``, ``msg.reply``, ``msg.finish``."""
    return SimpleNamespace(call=call, reply=reply, finish=finish)
