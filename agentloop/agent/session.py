"""Session lifecycle — resource setup, run context and ordered disposal."""

from __future__ import annotations

import asyncio
import glob
import inspect
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from loguru import logger

from agentloop.agent.events import AgentEvent, EventBus, attach_event_logger
from agentloop.agent.skills.loader import SkillMetadata, load_skills_metadata
from agentloop.agent.tools import CodeExecToolProvider, ToolProvider, ToolRegistry
from agentloop.agent.tools.finish import finish_paths
from agentloop.core.errors import (
    AgentCancelledError,
    AgentError,
    ConfigurationError,
    DisposalError,
)
from agentloop.core.models import ChatMessage

if TYPE_CHECKING:
    from agentloop.agent.agent import Agent
    from agentloop.agent.runner import RunResult, TurnRunner

DisposeCallback = Callable[[], Awaitable[Any] | Any]


class DisposalStack:
    """LIFO stack of cleanup callbacks.

    ``dispose`` runs every callback in reverse push order even when some of
    them fail, then raises one ``DisposalError`` holding all failures.
    Calling it again is a no-op.
    """

    def __init__(self) -> None:
        self._callbacks: list[DisposeCallback] = []

    def push(self, callback: DisposeCallback) -> None:
        self._callbacks.append(callback)

    def __len__(self) -> int:
        return len(self._callbacks)

    async def dispose(self) -> None:
        errors: list[Exception] = []
        while self._callbacks:
            callback = self._callbacks.pop()
            try:
                result = callback()
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Dispose callback failed: {e}")
                errors.append(e)
        if errors:
            raise DisposalError("Failed to dispose session resources", errors)


@dataclass
class SessionState:
    """Per-session resources shared by the turn loop and tool handlers."""

    disposal_stack: DisposalStack = field(default_factory=DisposalStack)
    exec_env: CodeExecToolProvider | None = None
    parent_exec_env: CodeExecToolProvider | None = None
    output_dir: str | None = None
    depth: int = 0
    uploaded_file_paths: list[str] = field(default_factory=list)
    skills_metadata: list[SkillMetadata] = field(default_factory=list)


@dataclass
class RunContext:
    """Explicit context passed to the turn loop, dispatcher and tool handlers."""

    session: SessionState
    events: EventBus
    cancel: asyncio.Event | None = None

    @property
    def depth(self) -> int:
        return self.session.depth

    def check_cancelled(self) -> None:
        """Raise ``AgentCancelledError`` once the cancel token is set."""
        if self.cancel is not None and self.cancel.is_set():
            raise AgentCancelledError()


def _is_glob(spec: str) -> bool:
    return any(ch in spec for ch in "*?[")


def resolve_input_files(specs: str | list[str]) -> list[str]:
    """Expand glob patterns and de-duplicate, preserving order.

    Raises
    ------
    ConfigurationError
        A glob pattern matched nothing.
    """
    items = [specs] if isinstance(specs, str) else list(specs)
    resolved: list[str] = []
    for spec in items:
        if not spec:
            continue
        if _is_glob(spec):
            matches = sorted(glob.glob(spec, recursive=True))
            if not matches:
                raise ConfigurationError(f"Glob pattern matched no files: {spec}")
            resolved.extend(matches)
        else:
            resolved.append(spec)
    return list(dict.fromkeys(resolved))


class AgentSession:
    """
    Async context manager owning the tools and resources of one agent session.

    Flow on enter:
        1. Code-exec provider (the session's exec env)
        2. Input files uploaded into the exec env
        3. Skills metadata loaded, skills dir uploaded as ``skills/``
        4. Remaining tools and providers, in configuration order
        5. Finish tool

    On exit, finish paths of the last run are moved to ``output_dir`` (root
    sessions only), then the disposal stack is released.
    """

    def __init__(
        self,
        agent: Agent,
        output_dir: str | None = None,
        input_files: str | list[str] | None = None,
        skills_dir: str | Path | None = None,
        log_events: bool = True,
        depth: int = 0,
        parent_exec_env: CodeExecToolProvider | None = None,
        events: EventBus | None = None,
    ) -> None:
        self.agent = agent
        self.state = SessionState(
            output_dir=output_dir,
            depth=depth,
            parent_exec_env=parent_exec_env,
        )
        self.events = events or EventBus()
        self.registry = ToolRegistry()
        self.system_prompt = ""
        self.last_result: RunResult | None = None

        self._input_files = input_files
        self._skills_dir = skills_dir
        self._log_events = log_events
        self._runner: TurnRunner | None = None
        self._initialized = False
        self._disposed = False

    @property
    def depth(self) -> int:
        return self.state.depth

    @property
    def last_finish_params(self) -> Any:
        return self.last_result.finish_params if self.last_result else None

    # ── Context manager ─────────────────────────────────────

    async def __aenter__(self) -> AgentSession:
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.dispose()

    async def open(self) -> None:
        """Initialize the session; release anything acquired if that fails."""
        try:
            await self.initialize()
        except BaseException:
            try:
                await self.dispose()
            except DisposalError as e:
                logger.error(f"Cleanup after failed initialization: {e}")
            raise

    async def initialize(self) -> None:
        if self._initialized:
            return
        if self._disposed:
            raise AgentError("Session already disposed")

        from agentloop.agent.runner import TurnRunner

        agent = self.agent
        state = self.state

        if self._log_events:
            state.disposal_stack.push(attach_event_logger(self.events, agent.name, state.depth))

        # 1. Exec env first, later steps upload into it
        for item in agent.tools:
            if isinstance(item, CodeExecToolProvider):
                await self._init_provider(item)
                state.exec_env = item

        # 2. Input files
        if self._input_files:
            if state.exec_env is None:
                raise ConfigurationError("input_files requires a CodeExecToolProvider")
            paths = resolve_input_files(self._input_files)
            if paths:
                uploaded = await state.exec_env.upload_files(paths)
                state.uploaded_file_paths.extend(uploaded)
                logger.debug(f"Uploaded {len(uploaded)} input file(s)")

        # 3. Skills
        if self._skills_dir:
            if state.exec_env is None:
                raise ConfigurationError("skills_dir requires a CodeExecToolProvider")
            state.skills_metadata = load_skills_metadata(self._skills_dir)
            await state.exec_env.upload_files([str(self._skills_dir)], dest_dir="skills")
            logger.debug(f"Loaded {len(state.skills_metadata)} skill(s)")

        # 4. Everything else, in order
        for item in agent.tools:
            if isinstance(item, CodeExecToolProvider):
                continue
            if isinstance(item, ToolProvider):
                await self._init_provider(item)
            else:
                self.registry.register(item)

        # 5. Finish tool last so it cannot be shadowed
        if agent.finish_tool is not None:
            self.registry.register(agent.finish_tool, group="finish")

        self.system_prompt = agent.context.build(
            self.registry,
            uploaded_file_paths=state.uploaded_file_paths,
            skills=state.skills_metadata,
        )
        self._runner = TurnRunner(agent, self.registry, self.system_prompt)
        self._initialized = True
        logger.info(
            f"Session started: agent={agent.name}, depth={state.depth}, "
            f"tools={len(self.registry)}"
        )

    async def _init_provider(self, provider: ToolProvider) -> None:
        await provider.initialize()
        tools = await provider.get_tools()
        tools = tools if isinstance(tools, list) else [tools]
        self.state.disposal_stack.push(provider.dispose)
        self.registry.register_group(type(provider).__name__, tools)

    # ── Running ─────────────────────────────────────────────

    def run_context(self, cancel: asyncio.Event | None = None) -> RunContext:
        return RunContext(session=self.state, events=self.events, cancel=cancel)

    async def run(
        self,
        task: str | list[ChatMessage],
        cancel: asyncio.Event | None = None,
    ) -> RunResult:
        """Run the agent on ``task`` inside this session."""
        if not self._initialized or self._runner is None:
            raise AgentError("Session is not initialized; use 'async with agent.session()'")
        result = await self._runner.run(task, self.run_context(cancel))
        self.last_result = result
        return result

    async def stream(
        self,
        task: str | list[ChatMessage],
        cancel: asyncio.Event | None = None,
    ) -> AsyncIterator[AgentEvent]:
        """Yield the events of one run as they happen.

        The run's result is available as ``last_result`` once the generator is
        exhausted; a failed run re-raises its error after the last event.
        """
        queue: asyncio.Queue[AgentEvent | None] = asyncio.Queue()
        unsubscribe = self.events.on_any(queue.put_nowait)
        run_task = asyncio.create_task(self.run(task, cancel))
        run_task.add_done_callback(lambda _: queue.put_nowait(None))
        try:
            while (event := await queue.get()) is not None:
                yield event
            await run_task
        finally:
            unsubscribe()
            if not run_task.done():
                run_task.cancel()

    # ── Disposal ────────────────────────────────────────────

    async def dispose(self) -> None:
        """Save outputs (root sessions) then release resources in reverse order."""
        if self._disposed:
            return
        self._disposed = True
        try:
            await self._save_outputs()
        finally:
            await self.state.disposal_stack.dispose()
            logger.debug(f"Session disposed: agent={self.agent.name}, depth={self.state.depth}")

    async def _save_outputs(self) -> None:
        state = self.state
        paths = finish_paths(self.last_finish_params)
        if not paths or state.depth != 0 or not state.output_dir or state.exec_env is None:
            return
        try:
            result = await state.exec_env.save_output_files(paths, state.output_dir)
        except Exception as e:
            logger.error(f"Error saving output files: {e}")
            return
        if result.saved:
            logger.info(f"Saved {len(result.saved)} file(s) to {state.output_dir}")
        for path, reason in result.failed.items():
            logger.warning(f"Failed to save {path}: {reason}")
