"""Coding agent: file tools, conversation model, LLM client and tool-use loop."""

from src.issue_runner.agent.conversation import (
    Conversation,
    ConversationError,
    Role,
    ToolCall,
    ToolResult,
    Turn,
)
from src.issue_runner.agent.llm import LLMAPIError, LLMClient, LLMResponse
from src.issue_runner.agent.loop import DEFAULT_MAX_ITERATIONS, AgentLoop, AgentResult
from src.issue_runner.agent.tools import (
    TOOL_DEFINITIONS,
    CreateDirectory,
    ListDirectory,
    ReadFile,
    ToolError,
    ToolExecutor,
    ToolInputError,
    ToolOutput,
    ToolRequest,
    UnknownToolError,
    WriteFile,
    parse_tool_request,
)

__all__ = [
    # Conversation
    "Conversation",
    "ConversationError",
    "Role",
    "ToolCall",
    "ToolResult",
    "Turn",
    # LLM
    "LLMAPIError",
    "LLMClient",
    "LLMResponse",
    # Loop
    "DEFAULT_MAX_ITERATIONS",
    "AgentLoop",
    "AgentResult",
    # Tools
    "TOOL_DEFINITIONS",
    "CreateDirectory",
    "ListDirectory",
    "ReadFile",
    "ToolError",
    "ToolExecutor",
    "ToolInputError",
    "ToolOutput",
    "ToolRequest",
    "UnknownToolError",
    "WriteFile",
    "parse_tool_request",
]
