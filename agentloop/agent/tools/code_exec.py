"""Code execution — provider contract and the local temp-dir backend."""

from __future__ import annotations

import abc
import asyncio
import os
import re
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

from loguru import logger
from pydantic import BaseModel, Field

from agentloop.agent.tools.base import Tool, ToolProvider, ToolResult
from agentloop.core.errors import ToolExecutionError
from agentloop.core.metadata import ToolUseCountMetadata

CODE_EXEC_TOOL_NAME = "code_exec"
MAX_OUTPUT = 10_000
DEFAULT_COMMAND_TIMEOUT = 300


class CodeExecParams(BaseModel):
    cmd: str = Field(description="Shell command to execute")


@dataclass
class CommandResult:
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    error_kind: str | None = None
    advice: str | None = None


@dataclass
class SavedFile:
    source_path: str
    output_path: str
    size: int


@dataclass
class SaveOutputFilesResult:
    saved: list[SavedFile] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)


def truncate(content: str, max_length: int = MAX_OUTPUT) -> str:
    if len(content) <= max_length:
        return content
    return content[:max_length] + "\n\n[Output truncated]"


def format_command_result(result: CommandResult) -> str:
    """Render a command result as the XML block the model sees."""
    lines = ["<command_result>", f"  <exit_code>{result.exit_code}</exit_code>"]
    if result.stdout:
        lines.append(f"  <stdout>{truncate(result.stdout)}</stdout>")
    if result.stderr:
        lines.append(f"  <stderr>{truncate(result.stderr)}</stderr>")
    if result.error_kind:
        lines.append(f"  <error_kind>{result.error_kind}</error_kind>")
    if result.advice:
        lines.append(f"  <advice>{result.advice}</advice>")
    lines.append("</command_result>")
    return "\n".join(lines)


def safe_relative_path(path: str) -> str:
    """Normalize to a POSIX relative path; reject absolute paths and ``..``."""
    normalized = path.replace("\\", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    if normalized.startswith("/"):
        raise ValueError(f"Invalid destination path (must be relative): {path}")
    if ".." in PurePosixPath(normalized).parts:
        raise ValueError(f"Invalid destination path (must not contain '..'): {path}")
    return normalized


class CodeExecToolProvider(ToolProvider):
    """Execution environment exposing a single ``code_exec`` tool.

    An agent holds at most one of these. Subclasses implement the command and
    byte-level file primitives; uploads and cross-environment transfers are
    built on top of them here.

    Parameters
    ----------
    allowed_commands : list[str], optional
        Regex allow-list; a command must match at least one pattern.
    description : str, optional
        Override for the tool description shown to the model.
    """

    def __init__(
        self,
        allowed_commands: list[str] | None = None,
        description: str | None = None,
    ) -> None:
        self.allowed_commands = (
            [re.compile(p) for p in allowed_commands] if allowed_commands else None
        )
        self.description = description

    async def get_tools(self) -> Tool | list[Tool]:
        return self.code_exec_tool()

    def code_exec_tool(self) -> Tool:
        async def handler(params: CodeExecParams, context: object) -> ToolResult:
            if self.allowed_commands is not None and not any(
                p.search(params.cmd) for p in self.allowed_commands
            ):
                logger.warning(f"Command rejected by allow-list: {params.cmd[:80]}")
                result = CommandResult(
                    exit_code=-1,
                    stderr="Command not allowed by security policy",
                    error_kind="security",
                    advice="Only specific commands are permitted. Check the allowed command patterns.",
                )
                return ToolResult(
                    content=format_command_result(result),
                    metadata=ToolUseCountMetadata(1),
                )
            try:
                result = await self.run_command(params.cmd)
            except Exception as e:
                logger.error(f"code_exec failed: {e}")
                result = CommandResult(exit_code=-1, stderr=str(e), error_kind="execution_error")
            return ToolResult(
                content=format_command_result(result),
                metadata=ToolUseCountMetadata(1),
            )

        return Tool(
            name=CODE_EXEC_TOOL_NAME,
            description=self.description
            or "Execute shell commands in a sandboxed environment. Returns stdout, stderr, and exit code.",
            handler=handler,
            parameters=CodeExecParams,
        )

    # ── Primitives ──────────────────────────────────────────

    @abc.abstractmethod
    async def run_command(self, cmd: str, timeout: float | None = None) -> CommandResult:
        ...

    @abc.abstractmethod
    async def read_file_bytes(self, path: str) -> bytes:
        ...

    @abc.abstractmethod
    async def write_file_bytes(self, path: str, content: bytes) -> None:
        ...

    # ── Transfers ───────────────────────────────────────────

    async def upload_files(
        self,
        paths: list[str],
        source_env: CodeExecToolProvider | None = None,
        dest_dir: str | None = None,
    ) -> list[str]:
        """Copy files into this environment.

        With ``source_env`` the paths are files inside that environment and are
        written under the same relative path here. Otherwise they are local
        files or directories; directories are uploaded recursively under
        ``dest_dir`` (or their own name). Failures are logged and skipped.

        Returns the destination paths written.
        """
        uploaded: list[str] = []
        for path in paths:
            try:
                if source_env is not None:
                    content = await source_env.read_file_bytes(path)
                    dest = safe_relative_path(path)
                    await self.write_file_bytes(dest, content)
                    uploaded.append(dest)
                    continue

                source = Path(path)
                if source.is_dir():
                    base = dest_dir or source.resolve().name
                    for file in sorted(p for p in source.rglob("*") if p.is_file()):
                        rel = file.relative_to(source).as_posix()
                        dest = safe_relative_path(f"{base}/{rel}")
                        await self.write_file_bytes(dest, file.read_bytes())
                        uploaded.append(dest)
                elif source.is_file():
                    absolute = source.resolve()
                    try:
                        rel = absolute.relative_to(Path.cwd().resolve()).as_posix()
                    except ValueError:
                        rel = absolute.name
                    dest = safe_relative_path(rel)
                    await self.write_file_bytes(dest, absolute.read_bytes())
                    uploaded.append(dest)
                else:
                    logger.warning(f"Skipping non-file, non-directory path: {path}")
            except (OSError, ValueError, ToolExecutionError) as e:
                logger.warning(f"Failed to upload {path}: {e}")
        return uploaded

    async def save_output_files(
        self,
        paths: list[str],
        output_dir: str,
        dest_env: CodeExecToolProvider | None = None,
    ) -> SaveOutputFilesResult:
        """Copy files out of this environment, by basename, into ``output_dir``.

        ``output_dir`` is a local directory, or a directory inside ``dest_env``
        when one is given ("" for its root).
        """
        result = SaveOutputFilesResult()
        for source in paths:
            try:
                content = await self.read_file_bytes(source)
                name = PurePosixPath(source.replace("\\", "/")).name
                if dest_env is not None:
                    dest = str(PurePosixPath(output_dir) / name) if output_dir else name
                    await dest_env.write_file_bytes(dest, content)
                else:
                    target = Path(output_dir) / name
                    target.parent.mkdir(parents=True, exist_ok=True)
                    target.write_bytes(content)
                    dest = str(target)
                result.saved.append(SavedFile(source, dest, len(content)))
            except (OSError, ValueError, ToolExecutionError) as e:
                result.failed[source] = str(e)
        return result


class LocalCodeExecToolProvider(CodeExecToolProvider):
    """Runs ``bash -c`` inside a private temporary directory.

    The directory is created in ``get_tools`` and removed in ``dispose``.
    """

    def __init__(
        self,
        allowed_commands: list[str] | None = None,
        temp_base_dir: str | None = None,
        description: str | None = None,
        timeout: float = DEFAULT_COMMAND_TIMEOUT,
    ) -> None:
        super().__init__(
            allowed_commands,
            description
            or "Execute a shell command in the execution environment. "
            "Returns exit code, stdout, and stderr as XML. Use `uv` to manage packages.",
        )
        self.temp_base_dir = temp_base_dir
        self.timeout = timeout
        self.temp_dir: Path | None = None

    @classmethod
    def from_config(cls, config) -> LocalCodeExecToolProvider:
        return cls(
            allowed_commands=config.code_exec.allowed_commands,
            temp_base_dir=config.code_exec.temp_base_dir,
            timeout=config.code_exec.timeout,
        )

    async def get_tools(self) -> Tool | list[Tool]:
        if self.temp_base_dir:
            os.makedirs(self.temp_base_dir, exist_ok=True)
        self.temp_dir = Path(tempfile.mkdtemp(prefix="agentloop-local-", dir=self.temp_base_dir))
        logger.debug(f"Local exec env: {self.temp_dir}")
        return await super().get_tools()

    async def dispose(self) -> None:
        if self.temp_dir is None:
            return
        temp_dir, self.temp_dir = self.temp_dir, None
        try:
            shutil.rmtree(temp_dir)
        except OSError as e:
            logger.warning(f"Failed to clean up {temp_dir}: {e}")

    def _require_dir(self) -> Path:
        if self.temp_dir is None:
            raise ToolExecutionError("Temp directory not initialized", CODE_EXEC_TOOL_NAME)
        return self.temp_dir

    def _resolve(self, path: str) -> Path:
        root = self._require_dir()
        if path.startswith("/") or ".." in PurePosixPath(path).parts:
            raise ValueError("Invalid file path: must be relative and within execution directory")
        return root / path

    async def run_command(self, cmd: str, timeout: float | None = None) -> CommandResult:
        cwd = self._require_dir()
        timeout = timeout or self.timeout
        logger.debug(f"code_exec: {cmd[:120]}")

        proc = await asyncio.create_subprocess_exec(
            "bash",
            "-c",
            cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd),
        )
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            return CommandResult(
                exit_code=-1,
                stderr="Command timed out",
                error_kind="timeout",
                advice=f"Command exceeded {timeout}s timeout",
            )

        return CommandResult(
            exit_code=proc.returncode if proc.returncode is not None else 0,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )

    async def read_file_bytes(self, path: str) -> bytes:
        return self._resolve(path).read_bytes()

    async def write_file_bytes(self, path: str, content: bytes) -> None:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)

    async def save_output_files(
        self,
        paths: list[str],
        output_dir: str,
        dest_env: CodeExecToolProvider | None = None,
    ) -> SaveOutputFilesResult:
        """Move files to a local ``output_dir``; copy when ``dest_env`` is given."""
        root = self._require_dir()
        if dest_env is not None:
            return await super().save_output_files(paths, output_dir, dest_env)

        result = SaveOutputFilesResult()
        out = Path(output_dir)
        out.mkdir(parents=True, exist_ok=True)
        resolved_root = root.resolve()

        for source in paths:
            source_path = Path(source)
            if not source_path.is_absolute():
                source_path = root / source_path
            try:
                resolved = source_path.resolve()
                if not resolved.is_relative_to(resolved_root):
                    result.failed[source] = "Path is outside execution environment directory"
                    continue
                if not resolved.is_file():
                    result.failed[source] = "Path is not a file"
                    continue
                size = resolved.stat().st_size
                dest = out / resolved.name
                shutil.move(str(resolved), str(dest))
                result.saved.append(SavedFile(source, str(dest), size))
            except OSError as e:
                result.failed[source] = str(e)
        return result
