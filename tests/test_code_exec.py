"""Tests for agentloop.agent.tools.code_exec."""

from __future__ import annotations

import pytest
import pytest_asyncio

from agentloop.agent.tools.code_exec import (
    CodeExecParams,
    CommandResult,
    LocalCodeExecToolProvider,
    format_command_result,
    safe_relative_path,
    truncate,
)
from agentloop.core.errors import ToolExecutionError
from agentloop.core.metadata import ToolUseCountMetadata


@pytest_asyncio.fixture
async def env():
    provider = LocalCodeExecToolProvider(timeout=5)
    await provider.get_tools()
    yield provider
    await provider.dispose()


# --- Formatting ---

def test_format_command_result():
    text = format_command_result(CommandResult(exit_code=0, stdout="hi\n"))
    assert text == "<command_result>\n  <exit_code>0</exit_code>\n  <stdout>hi\n</stdout>\n</command_result>"


def test_format_error_fields():
    text = format_command_result(
        CommandResult(exit_code=-1, stderr="nope", error_kind="security", advice="ask")
    )
    assert "<stderr>nope</stderr>" in text
    assert "<error_kind>security</error_kind>" in text
    assert "<advice>ask</advice>" in text
    assert "<stdout>" not in text


def test_truncate():
    assert truncate("abc", 5) == "abc"
    assert truncate("x" * 10_001) == "x" * 10_000 + "\n\n[Output truncated]"


@pytest.mark.parametrize("path", ["/etc/passwd", "../up.txt", "a/../../b"])
def test_safe_relative_path_rejects(path):
    with pytest.raises(ValueError):
        safe_relative_path(path)


def test_safe_relative_path_normalizes():
    assert safe_relative_path("./dir\\file.txt") == "dir/file.txt"


# --- Local provider ---

@pytest.mark.asyncio
async def test_temp_dir_lifecycle():
    provider = LocalCodeExecToolProvider()
    tool = await provider.get_tools()
    assert tool.name == "code_exec"
    temp_dir = provider.temp_dir
    assert temp_dir.is_dir()
    await provider.dispose()
    assert not temp_dir.exists()
    assert provider.temp_dir is None


@pytest.mark.asyncio
async def test_run_command(env):
    result = await env.run_command("echo hello && echo oops >&2 && exit 3")
    assert result.exit_code == 3
    assert result.stdout == "hello\n"
    assert result.stderr == "oops\n"


@pytest.mark.asyncio
async def test_run_command_cwd_is_temp_dir(env):
    result = await env.run_command("pwd")
    assert result.stdout.strip().endswith(env.temp_dir.name)


@pytest.mark.asyncio
async def test_run_command_timeout(env):
    result = await env.run_command("sleep 5", timeout=0.2)
    assert result.exit_code == -1
    assert result.error_kind == "timeout"


@pytest.mark.asyncio
async def test_run_command_uninitialized():
    with pytest.raises(ToolExecutionError, match="not initialized"):
        await LocalCodeExecToolProvider().run_command("true")


@pytest.mark.asyncio
async def test_tool_handler_output(env):
    tool = env.code_exec_tool()
    result = await tool.handler(CodeExecParams(cmd="echo 42"), None)
    assert "<exit_code>0</exit_code>" in result.content
    assert "<stdout>42\n</stdout>" in result.content
    assert result.metadata == ToolUseCountMetadata(1)


@pytest.mark.asyncio
async def test_allowed_commands():
    provider = LocalCodeExecToolProvider(allowed_commands=[r"^echo\b"])
    tool = await provider.get_tools()
    try:
        denied = await tool.handler(CodeExecParams(cmd="rm -rf ."), None)
        assert "<error_kind>security</error_kind>" in denied.content
        allowed = await tool.handler(CodeExecParams(cmd="echo ok"), None)
        assert "<stdout>ok\n</stdout>" in allowed.content
    finally:
        await provider.dispose()


@pytest.mark.asyncio
async def test_file_bytes_roundtrip_and_safety(env):
    await env.write_file_bytes("nested/data.bin", b"\x00\x01")
    assert await env.read_file_bytes("nested/data.bin") == b"\x00\x01"
    with pytest.raises(ValueError):
        await env.read_file_bytes("../escape")
    with pytest.raises(ValueError):
        await env.write_file_bytes("/abs.txt", b"")


@pytest.mark.asyncio
async def test_upload_file_and_directory(env, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "in.txt").write_text("input")
    skills = tmp_path / "my_skills" / "charts"
    skills.mkdir(parents=True)
    (skills / "SKILL.md").write_text("# charts")

    uploaded = await env.upload_files(["in.txt", "missing.txt"])
    assert uploaded == ["in.txt"]

    uploaded = await env.upload_files([str(tmp_path / "my_skills")], dest_dir="skills")
    assert uploaded == ["skills/charts/SKILL.md"]
    assert (env.temp_dir / "skills" / "charts" / "SKILL.md").read_text() == "# charts"


@pytest.mark.asyncio
async def test_upload_outside_cwd_uses_basename(env, tmp_path, monkeypatch):
    work = tmp_path / "work"
    work.mkdir()
    monkeypatch.chdir(work)
    outside = tmp_path / "elsewhere.txt"
    outside.write_text("x")
    assert await env.upload_files([str(outside)]) == ["elsewhere.txt"]


@pytest.mark.asyncio
async def test_save_output_files_moves(env, tmp_path):
    await env.write_file_bytes("out/chart.png", b"png")
    result = await env.save_output_files(
        ["out/chart.png", "absent.txt", "/etc/hostname"], str(tmp_path / "saved")
    )

    assert [s.source_path for s in result.saved] == ["out/chart.png"]
    assert result.saved[0].size == 3
    assert (tmp_path / "saved" / "chart.png").read_bytes() == b"png"
    assert not (env.temp_dir / "out" / "chart.png").exists()
    assert set(result.failed) == {"absent.txt", "/etc/hostname"}


@pytest.mark.asyncio
async def test_cross_env_transfer(env):
    other = LocalCodeExecToolProvider()
    await other.get_tools()
    try:
        await other.write_file_bytes("result.csv", b"a,b")
        result = await other.save_output_files(["result.csv"], "", dest_env=env)
        assert result.saved[0].output_path == "result.csv"
        assert await env.read_file_bytes("result.csv") == b"a,b"
        # copy, not move
        assert await other.read_file_bytes("result.csv") == b"a,b"

        await env.write_file_bytes("back.txt", b"hi")
        assert await other.upload_files(["back.txt"], source_env=env) == ["back.txt"]
        assert await other.read_file_bytes("back.txt") == b"hi"
    finally:
        await other.dispose()


@pytest.mark.asyncio
async def test_double_dot_inside_file_name(env):
    other = LocalCodeExecToolProvider()
    await other.get_tools()
    try:
        await env.write_file_bytes("report..v2.csv", b"x,y")
        assert await env.read_file_bytes("report..v2.csv") == b"x,y"
        result = await env.save_output_files(["report..v2.csv"], "", dest_env=other)
        assert result.failed == {}
        assert await other.read_file_bytes("report..v2.csv") == b"x,y"
        with pytest.raises(ValueError):
            await env.read_file_bytes("sub/../../report..v2.csv")
    finally:
        await other.dispose()
