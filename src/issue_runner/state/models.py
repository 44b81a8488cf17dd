"""Per-issue stage models.

This module defines the data models for the per-issue state machine:
- IssueStage: Enum of all stages an issue passes through in one run
- StageTransition: Record of a transition with timestamp and details
- IssueRunState: State of one issue's processing attempt
- VALID_TRANSITIONS: Map defining allowed stage transitions

Optional stages (review, testing, push, publish) may be skipped, so the
transition map allows jumping forward past them.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class IssueStage(str, Enum):
    """Stages of a single issue's processing attempt.

    Stage Flow:
        pending → workspace → implementation → verification
        → [review] → [testing] → commit → [push] → [publish] → completed

    Any non-terminal stage can transition to 'failed'.

    Attributes:
        PENDING: Issue selected, processing label applied.
        WORKSPACE: Creating the isolated worktree and branch.
        IMPLEMENTATION: Agent loop editing files in the worktree.
        VERIFICATION: Checking that the agent produced changes.
        REVIEW: Review loop critiquing and fixing the diff.
        TESTING: Running build and test commands.
        COMMIT: Staging and committing all changes.
        PUSH: Pushing the branch to the remote.
        PUBLISH: Opening the pull request.
        COMPLETED: All enabled stages succeeded.
        FAILED: A stage raised a fault.
    """

    PENDING = "pending"
    WORKSPACE = "workspace"
    IMPLEMENTATION = "implementation"
    VERIFICATION = "verification"
    REVIEW = "review"
    TESTING = "testing"
    COMMIT = "commit"
    PUSH = "push"
    PUBLISH = "publish"
    COMPLETED = "completed"
    FAILED = "failed"


class StageTransition(BaseModel):
    """Record of a stage transition.

    Attributes:
        from_stage: The stage before the transition.
        to_stage: The stage after the transition.
        timestamp: When the transition occurred (UTC).
        details: Optional metadata about the transition.
    """

    from_stage: IssueStage = Field(
        ...,
        description="The stage before this transition",
    )

    to_stage: IssueStage = Field(
        ...,
        description="The stage after this transition",
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the transition occurred (UTC timezone)",
    )

    details: Dict[str, Any] = Field(
        default_factory=dict,
        description="Optional metadata about the transition",
    )


class IssueRunState(BaseModel):
    """State of one issue's processing attempt.

    Lives only for the duration of the attempt; nothing is persisted
    between runs. Label changes on the tracker are the durable record.

    Attributes:
        issue_number: The issue being processed.
        current_stage: The current stage.
        state_history: Ordered list of all transitions.
        workspace_path: Worktree path once created.
        pr_url: Pull request URL once published.
        error: Error message if the attempt failed.
        failed_stage: Stage that was active when the fault occurred.
        started_at: When the attempt started (UTC).
    """

    issue_number: int = Field(..., gt=0)

    current_stage: IssueStage = Field(default=IssueStage.PENDING)

    state_history: List[StageTransition] = Field(default_factory=list)

    workspace_path: Optional[str] = None

    pr_url: Optional[str] = None

    error: Optional[str] = None

    failed_stage: Optional[IssueStage] = None

    started_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )


_FORWARD_ORDER: List[IssueStage] = [
    IssueStage.PENDING,
    IssueStage.WORKSPACE,
    IssueStage.IMPLEMENTATION,
    IssueStage.VERIFICATION,
    IssueStage.REVIEW,
    IssueStage.TESTING,
    IssueStage.COMMIT,
    IssueStage.PUSH,
    IssueStage.PUBLISH,
    IssueStage.COMPLETED,
]

# Stages that may be skipped depending on configuration and CLI overrides.
OPTIONAL_STAGES = frozenset(
    {
        IssueStage.REVIEW,
        IssueStage.TESTING,
        IssueStage.PUSH,
        IssueStage.PUBLISH,
    }
)


def _build_transitions() -> Dict[IssueStage, List[IssueStage]]:
    """Build the transition map from the forward stage order.

    Each stage may move to the next stage, to any later stage as long as
    every stage skipped over is optional, or to FAILED.
    """
    transitions: Dict[IssueStage, List[IssueStage]] = {}
    for index, stage in enumerate(_FORWARD_ORDER[:-1]):
        targets: List[IssueStage] = []
        for candidate in _FORWARD_ORDER[index + 1:]:
            targets.append(candidate)
            if candidate not in OPTIONAL_STAGES:
                break
        targets.append(IssueStage.FAILED)
        transitions[stage] = targets
    transitions[IssueStage.COMPLETED] = []
    transitions[IssueStage.FAILED] = []
    return transitions


# Valid stage transitions.
#
# - Stages run in the fixed forward order
# - Optional stages can be skipped, required ones cannot
# - Any non-terminal stage can transition to FAILED
# - COMPLETED and FAILED are terminal for the attempt
VALID_TRANSITIONS: Dict[IssueStage, List[IssueStage]] = _build_transitions()


def is_valid_transition(from_stage: IssueStage, to_stage: IssueStage) -> bool:
    """Check if a stage transition is valid.

    Example:
        >>> is_valid_transition(IssueStage.PENDING, IssueStage.WORKSPACE)
        True
        >>> is_valid_transition(IssueStage.IMPLEMENTATION, IssueStage.COMMIT)
        False
    """
    return to_stage in VALID_TRANSITIONS.get(from_stage, [])


def is_terminal_stage(stage: IssueStage) -> bool:
    """Check if a stage is terminal (has no outgoing transitions)."""
    return len(VALID_TRANSITIONS.get(stage, [])) == 0
