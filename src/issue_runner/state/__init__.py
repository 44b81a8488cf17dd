"""Per-issue stage tracking.

Each issue moves through:
- pending → workspace → implementation → verification
- → [review] → [testing] → commit → [push] → [publish] → completed

Any stage can fail. State is held in memory for the duration of one
processing attempt.
"""

from src.issue_runner.state.models import (
    IssueRunState,
    IssueStage,
    OPTIONAL_STAGES,
    StageTransition,
    VALID_TRANSITIONS,
    is_terminal_stage,
    is_valid_transition,
)
from src.issue_runner.state.machine import (
    InvalidTransitionError,
    IssueStateMachine,
)

__all__ = [
    # Models
    "IssueRunState",
    "IssueStage",
    "OPTIONAL_STAGES",
    "StageTransition",
    "VALID_TRANSITIONS",
    "is_terminal_stage",
    "is_valid_transition",
    # State machine
    "InvalidTransitionError",
    "IssueStateMachine",
]
