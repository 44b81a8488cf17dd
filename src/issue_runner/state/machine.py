"""Per-issue state machine implementation.

This module implements the IssueStateMachine class that tracks one issue's
progression through the processing stages, validating transitions,
recording timestamps and storing error details on failure.

The state lives in memory for a single processing attempt; nothing is
persisted between runs.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from src.issue_runner.state.models import (
    IssueRunState,
    IssueStage,
    StageTransition,
    is_terminal_stage,
    is_valid_transition,
)


logger = logging.getLogger(__name__)


class InvalidTransitionError(Exception):
    """Raised when an invalid stage transition is attempted.

    Attributes:
        from_stage: The current stage.
        to_stage: The attempted target stage.
        message: Human-readable error message.
    """

    def __init__(
        self,
        from_stage: IssueStage,
        to_stage: IssueStage,
        message: Optional[str] = None,
    ):
        self.from_stage = from_stage
        self.to_stage = to_stage
        self.message = message or (
            f"Invalid transition from {from_stage.value} to {to_stage.value}"
        )
        super().__init__(self.message)


class IssueStateMachine:
    """State machine for one issue's processing attempt.

    The state machine enforces the following invariants:
    - Only valid transitions (as defined in VALID_TRANSITIONS) are allowed
    - Every transition is recorded with a timestamp in state_history
    - Transitions to FAILED store the error and the stage that failed
    - Terminal stages accept no further transitions

    Example:
        >>> machine = IssueStateMachine(42)
        >>> machine.transition(IssueStage.WORKSPACE)
        >>> machine.current_stage
        <IssueStage.WORKSPACE: 'workspace'>
    """

    def __init__(self, issue_number: int):
        self._state = IssueRunState(issue_number=issue_number)

    @property
    def state(self) -> IssueRunState:
        """Return the current run state."""
        return self._state

    @property
    def current_stage(self) -> IssueStage:
        return self._state.current_stage

    @property
    def is_finished(self) -> bool:
        return is_terminal_stage(self._state.current_stage)

    def transition(
        self,
        to_stage: IssueStage,
        details: Optional[Dict[str, Any]] = None,
    ) -> IssueRunState:
        """Move the issue to a new stage.

        Args:
            to_stage: The target stage.
            details: Optional metadata about the transition. Keys
                "workspace_path" and "pr_url" are copied onto the state.

        Returns:
            The updated run state.

        Raises:
            InvalidTransitionError: If the transition is not valid.
        """
        details = details or {}
        from_stage = self._state.current_stage

        if not is_valid_transition(from_stage, to_stage):
            logger.warning(
                "Invalid stage transition attempted",
                extra={
                    "issue_number": self._state.issue_number,
                    "from_stage": from_stage.value,
                    "to_stage": to_stage.value,
                },
            )
            raise InvalidTransitionError(from_stage, to_stage)

        record = StageTransition(
            from_stage=from_stage,
            to_stage=to_stage,
            timestamp=datetime.now(timezone.utc),
            details=details,
        )

        updates: Dict[str, Any] = {
            "current_stage": to_stage,
            "state_history": self._state.state_history + [record],
        }
        if "workspace_path" in details:
            updates["workspace_path"] = details["workspace_path"]
        if "pr_url" in details:
            updates["pr_url"] = details["pr_url"]

        if to_stage == IssueStage.FAILED:
            error_message = details.get("error")
            if not error_message:
                error_message = "Unknown error (no details provided)"
                logger.warning(
                    "Transition to FAILED without error details",
                    extra={"issue_number": self._state.issue_number},
                )
            updates["error"] = error_message
            updates["failed_stage"] = from_stage

        self._state = self._state.model_copy(update=updates)

        logger.debug(
            "Stage transition",
            extra={
                "issue_number": self._state.issue_number,
                "from_stage": from_stage.value,
                "to_stage": to_stage.value,
            },
        )
        return self._state

    def fail(self, error: str, **details: Any) -> IssueRunState:
        """Transition to FAILED from whatever stage is current."""
        return self.transition(IssueStage.FAILED, {"error": error, **details})
