"""LLM client for the coding agent and the reviewer.

Adapts a Conversation to LangChain chat messages, calls an
OpenAI-compatible chat endpoint through ChatOpenAI (optionally with the
tool catalog bound), and maps the reply back to an LLMResponse.

Request timeout and bounded retries are handled by the underlying client.
Any failure that survives them is raised as LLMAPIError.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)
from langchain_openai import ChatOpenAI

from src.issue_runner.agent.conversation import Conversation, Role, ToolCall


logger = logging.getLogger(__name__)


class LLMAPIError(Exception):
    """Raised when the model endpoint cannot produce a reply.

    Attributes:
        message: Human-readable error description.
        cause: The underlying exception that caused the failure.
    """

    def __init__(self, message: str, cause: Optional[Exception] = None):
        self.message = message
        self.cause = cause
        super().__init__(message)


@dataclass(frozen=True)
class LLMResponse:
    """One model reply.

    Attributes:
        text: Concatenated textual content.
        tool_calls: Tool calls requested by the model, in order.
        stop_reason: Finish reason reported by the endpoint.
        input_tokens: Prompt tokens consumed.
        output_tokens: Completion tokens produced.
    """

    text: str = ""
    tool_calls: Tuple[ToolCall, ...] = field(default_factory=tuple)
    stop_reason: Optional[str] = None
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class LLMClient:
    """Chat client for an OpenAI-compatible endpoint.

    Attributes:
        model: Model identifier.
        base_url: Endpoint URL, or None for the default OpenAI API.
        temperature: Sampling temperature.
        max_tokens: Default completion token limit.
        timeout: Request timeout in seconds.
        max_retries: Retries performed by the underlying client.

    Example:
        >>> client = LLMClient(api_key="sk-...", model="gpt-4o")
        >>> conversation = Conversation()
        >>> conversation.add_user_text("Say hello")
        >>> response = await client.complete(conversation)
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: Optional[str] = None,
        temperature: float = 0.0,
        max_tokens: int = 8000,
        timeout: float = 300.0,
        max_retries: int = 3,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.max_retries = max_retries
        self._models: Dict[int, ChatOpenAI] = {}

    def chat_model(self, max_tokens: Optional[int] = None) -> ChatOpenAI:
        """Get the chat model for a token limit, creating it if necessary."""
        limit = max_tokens or self.max_tokens
        if limit not in self._models:
            self._models[limit] = ChatOpenAI(
                model=self.model,
                base_url=self.base_url,
                api_key=self.api_key,
                temperature=self.temperature,
                max_tokens=limit,
                timeout=self.timeout,
                max_retries=self.max_retries,
            )
        return self._models[limit]

    async def complete(
        self,
        conversation: Conversation,
        tools: Optional[Sequence[Dict[str, Any]]] = None,
        max_tokens: Optional[int] = None,
        system: Optional[str] = None,
    ) -> LLMResponse:
        """Send the conversation to the model and return its reply.

        Args:
            conversation: Turns exchanged so far.
            tools: Tool catalog in OpenAI function format, or None.
            max_tokens: Completion token limit override.
            system: Optional system instruction.

        Returns:
            The parsed reply.

        Raises:
            LLMAPIError: If the request fails after the client's retries.
        """
        messages = to_langchain_messages(conversation, system=system)
        runnable = self.chat_model(max_tokens)
        if tools:
            runnable = runnable.bind_tools(list(tools))

        try:
            reply = await runnable.ainvoke(messages)
        except Exception as e:
            logger.error(
                "LLM request failed",
                extra={
                    "model": self.model,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            raise LLMAPIError(f"LLM API error: {e}", cause=e) from e

        response = from_langchain_message(reply)
        logger.debug(
            "LLM reply",
            extra={
                "model": self.model,
                "stop_reason": response.stop_reason,
                "tool_calls": len(response.tool_calls),
                "input_tokens": response.input_tokens,
                "output_tokens": response.output_tokens,
            },
        )
        return response


def to_langchain_messages(
    conversation: Conversation,
    system: Optional[str] = None,
) -> List[BaseMessage]:
    """Convert a Conversation to LangChain chat messages.

    Tool results in a user turn become one ToolMessage each, which is how
    OpenAI-compatible endpoints expect tool answers to be delivered.
    """
    messages: List[BaseMessage] = []
    if system:
        messages.append(SystemMessage(content=system))

    for turn in conversation.turns:
        if turn.role == Role.ASSISTANT:
            messages.append(
                AIMessage(
                    content=turn.text,
                    tool_calls=[
                        {"name": call.name, "args": call.input, "id": call.id}
                        for call in turn.tool_calls
                    ],
                )
            )
        elif turn.tool_results:
            for result in turn.tool_results:
                messages.append(
                    ToolMessage(
                        content=result.text,
                        tool_call_id=result.tool_call_id,
                        status="error" if result.is_error else "success",
                    )
                )
        else:
            messages.append(HumanMessage(content=turn.text))
    return messages


def from_langchain_message(message: BaseMessage) -> LLMResponse:
    """Convert a LangChain reply to an LLMResponse."""
    tool_calls: List[ToolCall] = []
    for index, call in enumerate(getattr(message, "tool_calls", None) or []):
        tool_calls.append(
            ToolCall(
                id=call.get("id") or f"call_{index}",
                name=call["name"],
                input=dict(call.get("args") or {}),
            )
        )
    # Calls whose arguments were not valid JSON still need an answer.
    for index, call in enumerate(getattr(message, "invalid_tool_calls", None) or []):
        tool_calls.append(
            ToolCall(
                id=call.get("id") or f"invalid_call_{index}",
                name=call.get("name") or "unknown",
                input={},
                parse_error=call.get("error") or "arguments were not valid JSON",
            )
        )

    usage = getattr(message, "usage_metadata", None) or {}
    metadata = getattr(message, "response_metadata", None) or {}

    return LLMResponse(
        text=_content_text(message.content),
        tool_calls=tuple(tool_calls),
        stop_reason=metadata.get("finish_reason") or metadata.get("stop_reason"),
        input_tokens=int(usage.get("input_tokens", 0) or 0),
        output_tokens=int(usage.get("output_tokens", 0) or 0),
    )


def _content_text(content: Any) -> str:
    """Extract text from string or block-list message content."""
    if isinstance(content, str):
        return content
    parts: List[str] = []
    for block in content or []:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "\n".join(part for part in parts if part)
