"""Failure classification for issue processing faults.

Maps a fault to a closed set of categories. Classification is a pure
function of the fault's explicit category (when it carries one) or its
message text. The resulting category selects the failure label applied to
the issue and whether the fault is considered transient.
"""

import re
from enum import Enum
from typing import FrozenSet, Optional, Tuple


class ErrorCategory(str, Enum):
    """Closed set of failure categories.

    Attributes:
        TRACKER_API: Issue tracker (GitHub) API failures.
        GIT: Source control failures.
        LLM_API: Language model API failures.
        NETWORK: Connection-level failures.
        TIMEOUT: Operations that exceeded their deadline.
        VALIDATION: Invalid input or configuration.
        BUILD: The build command exited non-zero.
        TEST: The test command exited non-zero.
        UNKNOWN: Anything not matched above.
    """

    TRACKER_API = "tracker-api"
    GIT = "git"
    LLM_API = "llm-api"
    NETWORK = "network"
    TIMEOUT = "timeout"
    VALIDATION = "validation"
    BUILD = "build"
    TEST = "test"
    UNKNOWN = "unknown"


LABEL_PREFIX = "issue-runner"
PROCESSING_LABEL = f"{LABEL_PREFIX}:processing"
COMPLETED_LABEL = f"{LABEL_PREFIX}:completed"
FAILED_LABEL = f"{LABEL_PREFIX}:failed"

# Order matters: the first matching category wins. "git" only matches as a
# whole word so "github" falls through to the tracker patterns.
_MESSAGE_PATTERNS: Tuple[Tuple[ErrorCategory, Tuple[re.Pattern, ...]], ...] = (
    (ErrorCategory.GIT, (re.compile(r"\bgit\b"),)),
    (
        ErrorCategory.TRACKER_API,
        (
            re.compile(r"github"),
            re.compile(r"octokit"),
            re.compile(r"tracker"),
            re.compile(r"pull request"),
        ),
    ),
    (
        ErrorCategory.LLM_API,
        (
            re.compile(r"\bllm\b"),
            re.compile(r"anthropic"),
            re.compile(r"openai"),
            re.compile(r"claude"),
        ),
    ),
    (
        ErrorCategory.NETWORK,
        (
            re.compile(r"network"),
            re.compile(r"econnrefused"),
            re.compile(r"enotfound"),
            re.compile(r"connection refused"),
            re.compile(r"name or service not known"),
            re.compile(r"connecterror"),
        ),
    ),
    (ErrorCategory.TIMEOUT, (re.compile(r"timeout"), re.compile(r"timed out"))),
    (
        ErrorCategory.VALIDATION,
        (re.compile(r"validation"), re.compile(r"invalid")),
    ),
)

RETRYABLE_CATEGORIES: FrozenSet[ErrorCategory] = frozenset(
    {
        ErrorCategory.NETWORK,
        ErrorCategory.TIMEOUT,
        ErrorCategory.TRACKER_API,
        ErrorCategory.LLM_API,
    }
)


def classify_message(message: str) -> ErrorCategory:
    """Classify a fault message into an ErrorCategory.

    Matching is case-insensitive and the first category whose patterns
    match wins.

    Example:
        >>> classify_message("git push rejected")
        <ErrorCategory.GIT: 'git'>
        >>> classify_message("GitHub API returned 502")
        <ErrorCategory.TRACKER_API: 'tracker-api'>
    """
    lowered = (message or "").lower()
    for category, patterns in _MESSAGE_PATTERNS:
        if any(pattern.search(lowered) for pattern in patterns):
            return category
    return ErrorCategory.UNKNOWN


def classify_error(error: BaseException) -> ErrorCategory:
    """Classify an exception.

    Exceptions carrying an explicit ``category`` attribute (build and test
    failures) keep it; everything else is classified by its message.
    """
    explicit: Optional[ErrorCategory] = getattr(error, "category", None)
    if isinstance(explicit, ErrorCategory):
        return explicit
    return classify_message(str(error))


def label_for(category: ErrorCategory) -> str:
    """Return the failure label for a category."""
    if category == ErrorCategory.UNKNOWN:
        return FAILED_LABEL
    return f"{LABEL_PREFIX}:error-{category.value}"


def is_retryable(category: ErrorCategory) -> bool:
    """Return whether faults in this category are usually transient.

    Informational only: failed issues are never retried automatically.
    """
    return category in RETRYABLE_CATEGORIES


def all_failure_labels() -> FrozenSet[str]:
    """Every label that marks an issue as failed."""
    return frozenset(label_for(category) for category in ErrorCategory)


def control_labels() -> FrozenSet[str]:
    """Labels the runner manages itself; issues carrying any are skipped."""
    return all_failure_labels() | {PROCESSING_LABEL, COMPLETED_LABEL}
