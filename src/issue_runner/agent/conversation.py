"""Conversation model for one agent loop invocation.

A Conversation is an append-only list of user and assistant turns. An
assistant turn may request tool calls; the next user turn answers every
one of them with a ToolResult carrying the same correlation id.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation requested by the model.

    Attributes:
        id: Correlation id assigned by the model.
        name: Tool name.
        input: Structured arguments as sent by the model.
        parse_error: Why the arguments could not be decoded, if they
            could not.
    """

    id: str
    name: str
    input: Dict[str, Any] = field(default_factory=dict)
    parse_error: Optional[str] = None


@dataclass(frozen=True)
class ToolResult:
    """Answer to one ToolCall.

    Attributes:
        tool_call_id: Id of the ToolCall this answers.
        text: Tool output or error description.
        is_error: Whether the tool failed.
    """

    tool_call_id: str
    text: str
    is_error: bool = False


@dataclass(frozen=True)
class Turn:
    """One conversation turn.

    User turns carry either text or tool results. Assistant turns carry the
    model's text and any tool calls it made.
    """

    role: Role
    text: str = ""
    tool_calls: Tuple[ToolCall, ...] = ()
    tool_results: Tuple[ToolResult, ...] = ()


class ConversationError(Exception):
    """Raised when a turn would break the call/result pairing."""


class Conversation:
    """Append-only sequence of turns exchanged with the model."""

    def __init__(self) -> None:
        self._turns: List[Turn] = []

    def __len__(self) -> int:
        return len(self._turns)

    @property
    def turns(self) -> Tuple[Turn, ...]:
        return tuple(self._turns)

    @property
    def last(self) -> Optional[Turn]:
        return self._turns[-1] if self._turns else None

    def pending_tool_calls(self) -> Tuple[ToolCall, ...]:
        """Tool calls of the last turn, if it is an unanswered assistant turn."""
        last = self.last
        if last is None or last.role != Role.ASSISTANT:
            return ()
        return last.tool_calls

    def add_user_text(self, text: str) -> Turn:
        if self.pending_tool_calls():
            raise ConversationError("Tool calls must be answered before new instructions")
        return self._append(Turn(role=Role.USER, text=text))

    def add_assistant(self, text: str, tool_calls: Tuple[ToolCall, ...] = ()) -> Turn:
        last = self.last
        if last is None or last.role != Role.USER:
            raise ConversationError("Assistant turn must follow a user turn")
        return self._append(
            Turn(role=Role.ASSISTANT, text=text, tool_calls=tuple(tool_calls))
        )

    def add_tool_results(self, results: List[ToolResult]) -> Turn:
        """Append the answers to the last assistant turn's tool calls.

        Raises:
            ConversationError: If the results do not answer exactly the
                pending tool calls.
        """
        expected = [call.id for call in self.pending_tool_calls()]
        answered = [result.tool_call_id for result in results]
        if not expected or sorted(expected) != sorted(answered):
            raise ConversationError(
                f"Tool results {answered} do not match pending calls {expected}"
            )
        return self._append(Turn(role=Role.USER, tool_results=tuple(results)))

    def _append(self, turn: Turn) -> Turn:
        self._turns.append(turn)
        return turn
