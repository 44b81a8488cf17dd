"""Error taxonomy, pipeline exceptions and diagnostic formatting."""

from src.issue_runner.errors.exceptions import (
    AgentIncompleteError,
    BuildError,
    CommandFailedError,
    ConfigError,
    IssueRunnerError,
    IssueSelectionError,
    NoChangesError,
    ReviewFixError,
    StageError,
    TestError,
    UnresolvedReviewError,
)
from src.issue_runner.errors.formatting import format_diagnostic
from src.issue_runner.errors.taxonomy import (
    COMPLETED_LABEL,
    FAILED_LABEL,
    LABEL_PREFIX,
    PROCESSING_LABEL,
    RETRYABLE_CATEGORIES,
    ErrorCategory,
    all_failure_labels,
    classify_error,
    classify_message,
    control_labels,
    is_retryable,
    label_for,
)

__all__ = [
    # Taxonomy
    "COMPLETED_LABEL",
    "ErrorCategory",
    "FAILED_LABEL",
    "LABEL_PREFIX",
    "PROCESSING_LABEL",
    "RETRYABLE_CATEGORIES",
    "all_failure_labels",
    "classify_error",
    "classify_message",
    "control_labels",
    "is_retryable",
    "label_for",
    # Exceptions
    "AgentIncompleteError",
    "BuildError",
    "CommandFailedError",
    "ConfigError",
    "IssueRunnerError",
    "IssueSelectionError",
    "NoChangesError",
    "ReviewFixError",
    "StageError",
    "TestError",
    "UnresolvedReviewError",
    # Formatting
    "format_diagnostic",
]
