"""Tests for agentloop.core.metadata."""

from agentloop.agent.sub_agent import SubAgentMetadata
from agentloop.core.metadata import (
    TokenUsageMetadata,
    ToolUseCountMetadata,
    aggregate_metadata,
)
from agentloop.core.models import TokenUsage, UserMessage


def test_tool_use_count_folds_in_order():
    result = aggregate_metadata({
        "calc": [ToolUseCountMetadata(1), ToolUseCountMetadata(2), ToolUseCountMetadata(3)],
    })
    assert result == {"calc": ToolUseCountMetadata(6)}


def test_empty_collection_has_no_entry():
    result = aggregate_metadata({"unused": [], "used": [ToolUseCountMetadata(1)]})
    assert "unused" not in result
    assert result["used"].num_uses == 1


def test_non_addable_kept_as_list():
    result = aggregate_metadata({"raw": [{"a": 1}, "text"]})
    assert result["raw"] == [{"a": 1}, "text"]


def test_prefix():
    result = aggregate_metadata({"calc": [ToolUseCountMetadata(2)]}, prefix="child")
    assert list(result) == ["child.calc"]


def test_token_usage_total_and_dict():
    usage = TokenUsageMetadata.from_token_usage(TokenUsage(input=10, output=5, reasoning=2))
    total = usage + TokenUsageMetadata(input=1, output=1)
    assert total.total == 19
    assert total.to_dict() == {"input": 11, "output": 6, "reasoning": 2, "total": 19}


def test_tool_use_count_to_dict():
    assert ToolUseCountMetadata(4).to_dict() == {"num_uses": 4}


# ── SubAgentMetadata ──────────────────────────────────────


def test_sub_agent_metadata_merge():
    a = SubAgentMetadata(
        message_history=[[UserMessage(content="a")]],
        run_metadata={
            "token_usage": TokenUsageMetadata(input=1),
            "notes": ["x"],
            "label": "first",
        },
    )
    b = SubAgentMetadata(
        message_history=[[UserMessage(content="b")]],
        run_metadata={
            "token_usage": TokenUsageMetadata(input=2),
            "notes": ["y"],
            "label": "second",
            "code_exec": ToolUseCountMetadata(1),
        },
    )
    merged = a + b
    assert len(merged.message_history) == 2
    assert merged.run_metadata["token_usage"].input == 3
    assert merged.run_metadata["notes"] == ["x", "y"]
    assert merged.run_metadata["label"] == "second"
    assert merged.run_metadata["code_exec"].num_uses == 1


def test_sub_agent_metadata_aggregates():
    values = [SubAgentMetadata(run_metadata={"calc": ToolUseCountMetadata(1)}) for _ in range(3)]
    result = aggregate_metadata({"helper": values})
    assert result["helper"].run_metadata["calc"].num_uses == 3


def test_sub_agent_metadata_to_dict():
    meta = SubAgentMetadata(
        message_history=[[UserMessage(content="hi")]],
        run_metadata={"calc": ToolUseCountMetadata(2)},
    )
    d = meta.to_dict()
    assert d["message_history"][0][0] == {"role": "user", "content": "hi"}
    assert d["run_metadata"] == {"calc": {"num_uses": 2}}
