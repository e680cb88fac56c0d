"""agentloop — orchestration engine for tool-using LLM agents."""

from agentloop.agent.agent import Agent
from agentloop.agent.events import AgentEvent, EventBus, attach_event_logger
from agentloop.agent.runner import RunResult
from agentloop.agent.session import AgentSession, DisposalStack, RunContext, SessionState
from agentloop.agent.sub_agent import SubAgentMetadata, SubAgentParams
from agentloop.agent.tools import (
    FINISH_TOOL_NAME,
    SIMPLE_FINISH_TOOL,
    CodeExecToolProvider,
    FinishParams,
    LocalCodeExecToolProvider,
    Tool,
    ToolProvider,
    ToolRegistry,
    ToolResult,
    UserInputParams,
    make_user_input_tool,
)
from agentloop.core.config import Config, load_config
from agentloop.core.errors import (
    AgentCancelledError,
    AgentError,
    ConfigurationError,
    ContextOverflowError,
    DisposalError,
    ToolExecutionError,
)
from agentloop.core.metadata import (
    AddableMetadata,
    TokenUsageMetadata,
    ToolUseCountMetadata,
    aggregate_metadata,
)
from agentloop.core.models import (
    AssistantMessage,
    AudioBlock,
    ChatMessage,
    ImageBlock,
    SystemMessage,
    TokenUsage,
    ToolCall,
    ToolMessage,
    UserMessage,
    VideoBlock,
)
from agentloop.core.providers import LiteLLMClient, ModelClient

__version__ = "0.1.0"

__all__ = [
    "AddableMetadata",
    "Agent",
    "AgentCancelledError",
    "AgentError",
    "AgentEvent",
    "AgentSession",
    "AssistantMessage",
    "AudioBlock",
    "ChatMessage",
    "CodeExecToolProvider",
    "Config",
    "ConfigurationError",
    "ContextOverflowError",
    "DisposalError",
    "DisposalStack",
    "EventBus",
    "FINISH_TOOL_NAME",
    "FinishParams",
    "ImageBlock",
    "LiteLLMClient",
    "LocalCodeExecToolProvider",
    "ModelClient",
    "RunContext",
    "RunResult",
    "SIMPLE_FINISH_TOOL",
    "SessionState",
    "SubAgentMetadata",
    "SubAgentParams",
    "SystemMessage",
    "TokenUsage",
    "TokenUsageMetadata",
    "Tool",
    "ToolCall",
    "ToolExecutionError",
    "ToolMessage",
    "ToolProvider",
    "ToolRegistry",
    "ToolResult",
    "ToolUseCountMetadata",
    "UserInputParams",
    "UserMessage",
    "VideoBlock",
    "aggregate_metadata",
    "attach_event_logger",
    "load_config",
    "make_user_input_tool",
]
