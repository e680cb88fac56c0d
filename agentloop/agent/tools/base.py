"""Tool and ToolProvider — the executable units the model can call."""

from __future__ import annotations

import abc
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Union

from langchain_core.tools import BaseTool
from pydantic import BaseModel

from agentloop.core.metadata import ToolUseCountMetadata
from agentloop.core.models import Content

if TYPE_CHECKING:
    from agentloop.agent.session import RunContext


@dataclass
class ToolResult:
    """Value returned by a tool handler."""

    content: Content
    metadata: Any = None


ToolHandler = Callable[[Any, "RunContext"], Union[Awaitable[ToolResult], ToolResult]]


@dataclass
class Tool:
    """A named, schema-validated tool.

    ``handler`` receives the validated ``parameters`` instance (``None`` when
    the tool takes no arguments) and the current run context. It may be a
    coroutine function or a plain function.
    """

    name: str
    description: str
    handler: ToolHandler
    parameters: type[BaseModel] | None = None

    def definition(self) -> dict[str, Any]:
        """OpenAI function-calling definition."""
        if self.parameters is not None:
            schema = self.parameters.model_json_schema()
        else:
            schema = {"type": "object", "properties": {}}
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description or "",
                "parameters": schema,
            },
        }

    @classmethod
    def from_langchain(cls, tool: BaseTool) -> Tool:
        """Wrap a LangChain tool (``@tool`` function or ``BaseTool``)."""
        schema = tool.args_schema
        if not (isinstance(schema, type) and issubclass(schema, BaseModel)):
            schema = tool.get_input_schema()

        async def handler(params: BaseModel | None, context: RunContext) -> ToolResult:
            args = params.model_dump() if params is not None else {}
            result = await tool.ainvoke(args)
            return ToolResult(content=str(result), metadata=ToolUseCountMetadata(1))

        return cls(
            name=tool.name,
            description=tool.description or "",
            handler=handler,
            parameters=schema,
        )


class ToolProvider(abc.ABC):
    """Factory for stateful tools with a lifecycle.

    ``get_tools`` is called once per session; ``dispose`` releases whatever
    the provider acquired and is always pushed onto the session's disposal
    stack.
    """

    async def initialize(self) -> None:
        """Optional hook run before ``get_tools``."""

    @abc.abstractmethod
    async def get_tools(self) -> Tool | list[Tool]:
        ...

    @abc.abstractmethod
    async def dispose(self) -> None:
        ...
