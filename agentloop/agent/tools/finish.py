"""Finish tool — the reserved completion signal."""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, Field, field_validator

from agentloop.agent.tools.base import Tool, ToolResult
from agentloop.core.metadata import ToolUseCountMetadata

FINISH_TOOL_NAME = "finish"


class FinishParams(BaseModel):
    """Default finish parameters: a final answer plus output files."""

    reason: str = Field(
        description=(
            "Result of the task, including a summary of what was accomplished "
            "and the final answer (if applicable)"
        )
    )
    paths: list[str] = Field(
        default_factory=list,
        description=(
            "Output file paths (a single string or a list of strings). "
            'Example: ["output.png", "data.csv"] or "output.png"'
        ),
    )

    @field_validator("paths", mode="before")
    @classmethod
    def _normalize_paths(cls, value: Any) -> Any:
        # Models sometimes send one path, or a JSON-encoded list as a string
        if value is None or value == "":
            return []
        items = value if isinstance(value, list) else [value]
        result = []
        for item in items:
            if isinstance(item, str) and item.strip().startswith("["):
                try:
                    parsed = json.loads(item)
                except json.JSONDecodeError:
                    result.append(item)
                    continue
                result.extend(parsed if isinstance(parsed, list) else [item])
            else:
                result.append(item)
        return result


async def _finish(params: FinishParams, context: Any) -> ToolResult:
    return ToolResult(
        content=f"Task completed: {params.reason}",
        metadata=ToolUseCountMetadata(1),
    )


SIMPLE_FINISH_TOOL = Tool(
    name=FINISH_TOOL_NAME,
    description=(
        "Signal that the task is complete. You MUST include any files you "
        "created or modified in the paths parameter."
    ),
    handler=_finish,
    parameters=FinishParams,
)


def finish_paths(finish_params: Any) -> list[str]:
    """Return ``finish_params.paths`` when it is a list of paths, else []."""
    paths = getattr(finish_params, "paths", None)
    if isinstance(paths, list):
        return [p for p in paths if isinstance(p, str) and p]
    return []
