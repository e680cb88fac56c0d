"""Tool system — Tool/ToolProvider types and the per-session ToolRegistry."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

from loguru import logger

from agentloop.agent.tools.base import Tool, ToolHandler, ToolProvider, ToolResult
from agentloop.agent.tools.code_exec import (
    CodeExecParams,
    CodeExecToolProvider,
    CommandResult,
    LocalCodeExecToolProvider,
    SaveOutputFilesResult,
)
from agentloop.agent.tools.finish import (
    FINISH_TOOL_NAME,
    SIMPLE_FINISH_TOOL,
    FinishParams,
)
from agentloop.agent.tools.user_input import (
    USER_INPUT_TOOL_NAME,
    UserInputParams,
    make_user_input_tool,
)


@dataclass
class ToolInfo:
    """A registered tool and the group (provider or "static") it came from."""

    tool: Tool
    group: str


class ToolRegistry:
    """Name → tool lookup for one session.

    Holds non-owning references; the provider that produced a tool keeps
    ownership. Registering a name twice replaces the earlier entry.
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolInfo] = {}
        self._groups: dict[str, list[str]] = {}

    def register(self, tool: Tool, group: str = "static") -> None:
        previous = self._tools.get(tool.name)
        if previous is not None:
            logger.debug(f"Tool '{tool.name}' replaces registration from '{previous.group}'")
            names = self._groups.get(previous.group, [])
            if tool.name in names:
                names.remove(tool.name)
        self._tools[tool.name] = ToolInfo(tool=tool, group=group)
        self._groups.setdefault(group, []).append(tool.name)

    def register_group(self, group: str, tools: list[Tool]) -> None:
        """Register a list of tools under a group name."""
        for t in tools:
            self.register(t, group)

    def get(self, name: str) -> Tool | None:
        info = self._tools.get(name)
        return info.tool if info else None

    def as_mapping(self) -> dict[str, Tool]:
        """Tools keyed by name, in registration order (model client input)."""
        return {name: info.tool for name, info in self._tools.items()}

    def get_group_tool_names(self, group: str) -> list[str]:
        return list(self._groups.get(group, []))

    def get_catalog(self) -> list[dict[str, Any]]:
        """Name, group and first description line of every tool."""
        result = []
        for name in sorted(self._tools):
            info = self._tools[name]
            result.append({
                "name": name,
                "group": info.group,
                "description": (info.tool.description or "").split("\n")[0],
            })
        return result

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[str]:
        return iter(self._tools)


__all__ = [
    "CodeExecParams",
    "CodeExecToolProvider",
    "CommandResult",
    "FINISH_TOOL_NAME",
    "FinishParams",
    "LocalCodeExecToolProvider",
    "SIMPLE_FINISH_TOOL",
    "SaveOutputFilesResult",
    "Tool",
    "ToolHandler",
    "ToolInfo",
    "ToolProvider",
    "ToolRegistry",
    "ToolResult",
    "USER_INPUT_TOOL_NAME",
    "UserInputParams",
    "make_user_input_tool",
]
