"""LangGraph StateGraph — compile the turn loop."""

from __future__ import annotations

from typing import TYPE_CHECKING

from langgraph.graph import END, START, StateGraph

from agentloop.agent.nodes import make_nodes, should_continue
from agentloop.agent.state import TurnState
from agentloop.agent.tools import ToolRegistry

if TYPE_CHECKING:
    from agentloop.agent.agent import Agent


def create_graph(agent: Agent, registry: ToolRegistry, system_prompt: str):
    """
    Build and compile the turn graph.

    Graph flow:
        START → load_context → generate → execute_tools → {generate | summarize | END}
        summarize → generate
    """
    nodes = make_nodes(agent, registry, system_prompt)

    graph = StateGraph(TurnState)

    # Add nodes
    graph.add_node("load_context", nodes["load_context"])
    graph.add_node("generate", nodes["generate"])
    graph.add_node("execute_tools", nodes["execute_tools"])
    graph.add_node("summarize", nodes["summarize"])

    # Edges
    graph.add_edge(START, "load_context")
    graph.add_edge("load_context", "generate")
    graph.add_edge("generate", "execute_tools")
    graph.add_conditional_edges(
        "execute_tools",
        should_continue,
        ["generate", "summarize", END],
    )
    graph.add_edge("summarize", "generate")
    return graph.compile()
