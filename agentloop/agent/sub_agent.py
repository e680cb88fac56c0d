"""Sub-agent bridge — expose an Agent as a Tool of another agent."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from loguru import logger
from pydantic import BaseModel, Field

from agentloop.agent.session import AgentSession, RunContext
from agentloop.agent.tools import Tool, ToolResult
from agentloop.agent.tools.finish import finish_paths
from agentloop.core.errors import AgentCancelledError, DisposalError
from agentloop.core.metadata import AddableMetadata
from agentloop.core.models import ChatMessage, dump_messages

if TYPE_CHECKING:
    from agentloop.agent.agent import Agent


class SubAgentParams(BaseModel):
    task: str = Field(description="The task to delegate to the sub-agent")
    input_files: list[str] = Field(
        default_factory=list,
        description="Files in your execution environment to copy to the sub-agent",
    )


@dataclass(frozen=True)
class SubAgentMetadata(AddableMetadata):
    """Message history and run metadata of sub-agent runs."""

    message_history: list[list[ChatMessage]] = field(default_factory=list)
    run_metadata: dict[str, Any] = field(default_factory=dict)

    def __add__(self, other: SubAgentMetadata) -> SubAgentMetadata:
        merged = dict(self.run_metadata)
        for key, value in other.run_metadata.items():
            current = merged.get(key)
            if isinstance(current, list) and isinstance(value, list):
                merged[key] = [*current, *value]
            elif isinstance(current, AddableMetadata) and isinstance(value, AddableMetadata):
                merged[key] = current + value
            else:
                merged[key] = value
        return SubAgentMetadata(
            message_history=[*self.message_history, *other.message_history],
            run_metadata=merged,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "message_history": [dump_messages(group) for group in self.message_history],
            "run_metadata": {
                k: v.to_dict() if isinstance(v, AddableMetadata) else v
                for k, v in self.run_metadata.items()
            },
        }


def format_sub_agent_result(finish_params: Any, paths: list[str]) -> str:
    lines = ["<sub_agent_result>"]
    reason = getattr(finish_params, "reason", None)
    if reason:
        lines.append(f"  <reason>{reason}</reason>")
    if paths:
        lines.append(f"  <paths>{', '.join(paths)}</paths>")
    lines.append("</sub_agent_result>")
    return "\n".join(lines)


def make_sub_agent_tool(
    agent: Agent,
    description: str | None = None,
    system_prompt: str | None = None,
    reuse_session: bool = False,
) -> Tool:
    """Create a tool that runs ``agent`` as a child of the calling agent.

    Parameters
    ----------
    agent : Agent
        The agent to delegate to. Its name becomes the tool name.
    description : str, optional
        Tool description shown to the parent model.
    system_prompt : str, optional
        Replaces the child's custom system prompt.
    reuse_session : bool
        Keep one child session per parent session across calls, disposed
        with the parent session. Default: a fresh session per call.
    """
    child = agent.clone(system_prompt=system_prompt) if system_prompt else agent
    # parent SessionState id → open child session
    reused: dict[int, AgentSession] = {}

    async def _open_child(context: RunContext) -> AgentSession:
        session = child.session(
            output_dir=None,
            depth=context.depth + 1,
            parent_exec_env=context.session.exec_env,
        )
        await session.open()
        return session

    async def _reused_child(context: RunContext) -> AgentSession:
        key = id(context.session)
        session = reused.get(key)
        if session is None:
            session = await _open_child(context)
            reused[key] = session

            async def _dispose() -> None:
                reused.pop(key, None)
                await session.dispose()

            context.session.disposal_stack.push(_dispose)
        return session

    async def handler(params: SubAgentParams, context: RunContext) -> ToolResult:
        parent_env = context.session.exec_env
        session: AgentSession | None = None
        try:
            if reuse_session:
                session = await _reused_child(context)
            else:
                session = await _open_child(context)

            child_env = session.state.exec_env
            if params.input_files and child_env is not None and parent_env is not None:
                await child_env.upload_files(params.input_files, source_env=parent_env)

            result = await session.run(params.task, cancel=context.cancel)

            paths = finish_paths(result.finish_params)
            if paths and child_env is not None and parent_env is not None:
                saved = await child_env.save_output_files(paths, "", dest_env=parent_env)
                for path, reason in saved.failed.items():
                    logger.warning(f"Sub-agent {child.name}: failed to transfer {path}: {reason}")
                paths = [s.output_path for s in saved.saved]

            return ToolResult(
                content=format_sub_agent_result(result.finish_params, paths),
                metadata=SubAgentMetadata(result.message_history, result.run_metadata),
            )
        except AgentCancelledError:
            raise
        except Exception as e:
            logger.error(f"Sub-agent {child.name} failed: {e}")
            return ToolResult(
                content=f"<sub_agent_error>{e}</sub_agent_error>",
                metadata=SubAgentMetadata(),
            )
        finally:
            if session is not None and not reuse_session:
                try:
                    await session.dispose()
                except DisposalError as e:
                    logger.error(f"Sub-agent {child.name} cleanup failed: {e}")

    return Tool(
        name=agent.name,
        description=description or f"Delegate a task to the {agent.name} sub-agent",
        handler=handler,
        parameters=SubAgentParams,
    )
