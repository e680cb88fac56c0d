"""Run metadata — addable per-tool statistics and their aggregation."""

from __future__ import annotations

import abc
from dataclasses import asdict, dataclass
from functools import reduce
from typing import Any

from agentloop.core.models import TokenUsage


class AddableMetadata(abc.ABC):
    """Metadata value that can be merged with another of the same type.

    Subclasses implement ``__add__``; aggregation folds values left to right
    in call order, so ``__add__`` must be associative.
    """

    @abc.abstractmethod
    def __add__(self, other: Any) -> Any:
        ...

    def to_dict(self) -> dict[str, Any]:
        return asdict(self) if hasattr(self, "__dataclass_fields__") else {}


@dataclass(frozen=True)
class TokenUsageMetadata(AddableMetadata):
    """Accumulated token usage across generations."""

    input: int = 0
    output: int = 0
    reasoning: int = 0

    @property
    def total(self) -> int:
        return self.input + self.output + self.reasoning

    def __add__(self, other: TokenUsageMetadata) -> TokenUsageMetadata:
        return TokenUsageMetadata(
            input=self.input + other.input,
            output=self.output + other.output,
            reasoning=self.reasoning + other.reasoning,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "input": self.input,
            "output": self.output,
            "reasoning": self.reasoning,
            "total": self.total,
        }

    @classmethod
    def from_token_usage(cls, usage: TokenUsage) -> TokenUsageMetadata:
        return cls(input=usage.input, output=usage.output, reasoning=usage.reasoning)


@dataclass(frozen=True)
class ToolUseCountMetadata(AddableMetadata):
    """Number of successful invocations of a tool."""

    num_uses: int = 1

    def __add__(self, other: ToolUseCountMetadata) -> ToolUseCountMetadata:
        return ToolUseCountMetadata(num_uses=self.num_uses + other.num_uses)


def aggregate_metadata(
    metadata: dict[str, list[Any]],
    prefix: str = "",
) -> dict[str, Any]:
    """Fold per-tool metadata lists into one value per tool.

    Parameters
    ----------
    metadata : dict[str, list]
        Tool name to the metadata values collected in call order.
    prefix : str
        Optional key prefix (``"prefix.key"``), used for nested agents.

    Returns
    -------
    dict[str, Any]
        Addable values are folded with ``+``; anything else is kept as the
        original list. Tools with no collected values are omitted.
    """
    result: dict[str, Any] = {}
    for key, values in metadata.items():
        if not values:
            continue
        full_key = f"{prefix}.{key}" if prefix else key
        if isinstance(values[0], AddableMetadata):
            result[full_key] = reduce(lambda acc, value: acc + value, values)
        else:
            result[full_key] = list(values)
    return result
