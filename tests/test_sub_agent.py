"""Tests for agentloop.agent.sub_agent (agent-as-tool delegation)."""

from __future__ import annotations

import asyncio

import pytest

from agentloop.agent.agent import Agent
from agentloop.agent.sub_agent import SubAgentMetadata, SubAgentParams, format_sub_agent_result
from agentloop.agent.tools import FinishParams, LocalCodeExecToolProvider, Tool, ToolResult
from agentloop.core.errors import AgentCancelledError
from agentloop.core.metadata import ToolUseCountMetadata
from agentloop.core.models import ToolMessage


def _depth_reporter(seen):
    async def report_depth(params, context):
        seen.append(context.depth)
        return ToolResult(content=f"depth={context.depth}")

    return Tool(name="where_am_i", description="Report depth", handler=report_depth)


def _tool_messages(result, name):
    return [
        m for group in result.message_history for m in group
        if isinstance(m, ToolMessage) and m.name == name
    ]


def test_to_tool_shape(make_client):
    child = Agent(make_client(), name="researcher", log_events=False)
    tool = child.to_tool()
    assert tool.name == "researcher"
    assert tool.parameters is SubAgentParams
    assert tool.description == "Delegate a task to the researcher sub-agent"
    assert child.to_tool(description="Finds things").description == "Finds things"


def test_format_sub_agent_result():
    text = format_sub_agent_result(FinishParams(reason="found it", paths=["a.txt"]), ["a.txt"])
    assert text == (
        "<sub_agent_result>\n  <reason>found it</reason>\n  <paths>a.txt</paths>\n</sub_agent_result>"
    )
    assert format_sub_agent_result(None, []) == "<sub_agent_result>\n</sub_agent_result>"


@pytest.mark.asyncio
async def test_delegation_depth_and_result(make_client, msg):
    seen = []
    child_client = make_client([
        msg.reply(msg.call("where_am_i")),
        msg.reply(msg.finish("child done")),
    ])
    child = Agent(child_client, name="child", tools=[_depth_reporter(seen)], log_events=False)

    parent_client = make_client([
        msg.reply(msg.call("child", {"task": "dig"}, call_id="d1")),
        msg.reply(msg.finish("parent done")),
    ])
    parent = Agent(parent_client, name="parent", tools=[child.to_tool()], log_events=False)

    result = await parent.run("delegate")

    assert seen == [1]
    assert child_client.calls[0][1].content == "dig"
    [delegated] = _tool_messages(result, "child")
    assert delegated.content == "<sub_agent_result>\n  <reason>child done</reason>\n</sub_agent_result>"

    meta = result.run_metadata["child"]
    assert isinstance(meta, SubAgentMetadata)
    assert len(meta.message_history) == 1
    assert "where_am_i" not in meta.run_metadata
    assert meta.run_metadata["finish"] == ToolUseCountMetadata(1)
    assert result.finish_params.reason == "parent done"


@pytest.mark.asyncio
async def test_nested_depth(make_client, msg):
    seen = []
    leaf = Agent(
        make_client([msg.reply(msg.call("where_am_i")), msg.reply(msg.finish())]),
        name="leaf",
        tools=[_depth_reporter(seen)],
        log_events=False,
    )
    middle = Agent(
        make_client([msg.reply(msg.call("leaf", {"task": "go"})), msg.reply(msg.finish())]),
        name="middle",
        tools=[leaf.to_tool()],
        log_events=False,
    )
    root = Agent(
        make_client([msg.reply(msg.call("middle", {"task": "go"})), msg.reply(msg.finish())]),
        name="root",
        tools=[middle.to_tool()],
        log_events=False,
    )
    await root.run("start")
    assert seen == [2]


@pytest.mark.asyncio
async def test_child_failure_becomes_error_content(make_client, msg):
    child = Agent(make_client([RuntimeError("model unavailable")]), name="flaky", log_events=False)
    parent_client = make_client([
        msg.reply(msg.call("flaky", {"task": "try"})),
        msg.reply(msg.finish()),
    ])
    parent = Agent(parent_client, name="parent", tools=[child.to_tool()], log_events=False)

    result = await parent.run("delegate")
    [delegated] = _tool_messages(result, "flaky")
    assert delegated.content == "<sub_agent_error>model unavailable</sub_agent_error>"
    assert delegated.args_was_valid is True
    assert result.finish_params is not None


@pytest.mark.asyncio
async def test_cancellation_propagates_through_child(make_client, msg):
    async def stop(params, context):
        context.cancel.set()
        return ToolResult(content="stopped")

    child = Agent(
        make_client([msg.reply(msg.call("stop"), msg.call("stop"))]),
        name="child",
        tools=[Tool(name="stop", description="", handler=stop)],
        log_events=False,
    )
    parent = Agent(
        make_client([msg.reply(msg.call("child", {"task": "x"}))]),
        name="parent",
        tools=[child.to_tool()],
        log_events=False,
    )
    with pytest.raises(AgentCancelledError):
        await parent.run("delegate", cancel=asyncio.Event())


@pytest.mark.asyncio
async def test_files_move_between_exec_envs(make_client, msg):
    child_env = LocalCodeExecToolProvider()
    child = Agent(
        make_client([
            msg.reply(msg.call("code_exec", {"cmd": "tr a-z A-Z < input.txt > output.txt"})),
            msg.reply(msg.finish("converted", paths=["output.txt"])),
        ]),
        name="converter",
        tools=[child_env],
        log_events=False,
    )
    parent_env = LocalCodeExecToolProvider()
    parent = Agent(
        make_client([
            msg.reply(msg.call("code_exec", {"cmd": "printf hello > input.txt"})),
            msg.reply(msg.call("converter", {"task": "upper", "input_files": ["input.txt"]})),
            msg.reply(msg.call("code_exec", {"cmd": "cat output.txt"})),
            msg.reply(msg.finish()),
        ]),
        name="parent",
        tools=[parent_env, child.to_tool()],
        log_events=False,
    )

    async with parent.session(output_dir=None) as session:
        result = await session.run("convert")
        [delegated] = _tool_messages(result, "converter")
        assert "<paths>output.txt</paths>" in delegated.content
        assert (parent_env.temp_dir / "output.txt").read_text() == "HELLO"
        # child env disposed after the call
        assert child_env.temp_dir is None

    cat = _tool_messages(result, "code_exec")[-1]
    assert "<stdout>HELLO</stdout>" in cat.content


@pytest.mark.asyncio
async def test_reuse_session_keeps_child_open(make_client, msg):
    log = []

    class CountingEnv(LocalCodeExecToolProvider):
        async def get_tools(self):
            log.append("open")
            return await super().get_tools()

        async def dispose(self):
            log.append("close")
            await super().dispose()

    child = Agent(
        make_client([
            msg.reply(msg.call("code_exec", {"cmd": "echo 1 > state.txt"})),
            msg.reply(msg.finish("first")),
            msg.reply(msg.call("code_exec", {"cmd": "cat state.txt"})),
            msg.reply(msg.finish("second")),
        ]),
        name="worker",
        tools=[CountingEnv()],
        log_events=False,
    )
    parent = Agent(
        make_client([
            msg.reply(msg.call("worker", {"task": "one"}, call_id="w1")),
            msg.reply(msg.call("worker", {"task": "two"}, call_id="w2")),
            msg.reply(msg.finish()),
        ]),
        name="parent",
        tools=[child.to_tool(reuse_session=True)],
        log_events=False,
    )

    async with parent.session() as session:
        result = await session.run("twice")
        assert log == ["open"]

    assert log == ["open", "close"]
    meta = result.run_metadata["worker"]
    assert len(meta.message_history) == 2
    second_child_group = meta.message_history[1]
    cat = next(m for m in second_child_group if isinstance(m, ToolMessage) and m.name == "code_exec")
    assert "<stdout>1\n</stdout>" in cat.content


@pytest.mark.asyncio
async def test_custom_system_prompt_for_child(make_client, msg):
    child_client = make_client([msg.reply(msg.finish())])
    child = Agent(child_client, name="helper", system_prompt="Original.", log_events=False)
    parent = Agent(
        make_client([msg.reply(msg.call("helper", {"task": "t"})), msg.reply(msg.finish())]),
        name="parent",
        tools=[child.to_tool(system_prompt="Override.")],
        log_events=False,
    )
    await parent.run("go")
    system = child_client.calls[0][0].content
    assert system.endswith("Override.")
    assert "Original." not in system
