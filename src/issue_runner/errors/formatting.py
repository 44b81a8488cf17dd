"""Diagnostic comment formatting for failed issues.

Renders a classified fault as GitHub-flavored markdown for posting on the
issue that failed.
"""

import traceback
from typing import Optional

from src.issue_runner.errors.taxonomy import ErrorCategory, is_retryable


DIAGNOSTIC_HEADER = "## ⚠️ Automated implementation failed\n\n"

DIAGNOSTIC_FOOTER = """
---

*Please check the run logs for details. Remove the failure label to make this issue eligible again.*
"""

MAX_TRACE_LINES = 10


def format_diagnostic(
    error: BaseException,
    category: ErrorCategory,
    stage: Optional[str] = None,
) -> str:
    """Format a fault as a markdown diagnostic comment.

    Args:
        error: The exception that ended processing.
        category: The classified category.
        stage: Name of the stage that was running, if known.

    Returns:
        Markdown with the category, message, stage and up to ten lines of
        traceback in a fenced code block.
    """
    lines = [
        f"**Error Type:** `{category.value}`",
        f"**Error Message:** {_sanitize_message(str(error)) or type(error).__name__}",
    ]
    if stage:
        lines.append(f"**Stage:** {stage}")
    if is_retryable(category):
        lines.append("**Transient:** this failure may succeed on a later run.")

    body = "\n".join(lines)

    trace = _format_trace(error)
    if trace:
        body += f"\n\n**Stack Trace:**\n```\n{trace}\n```"

    return f"{DIAGNOSTIC_HEADER}{body}\n{DIAGNOSTIC_FOOTER}"


def _format_trace(error: BaseException) -> str:
    """Return at most MAX_TRACE_LINES lines of the exception's traceback."""
    if error.__traceback__ is None:
        return ""
    formatted = "".join(
        traceback.format_exception(type(error), error, error.__traceback__)
    )
    trace_lines = [line for line in formatted.splitlines() if line.strip()]
    return "\n".join(trace_lines[:MAX_TRACE_LINES])


def _sanitize_message(message: str) -> str:
    """Collapse a message onto one line for inline markdown."""
    sanitized = message.strip().replace("\r", " ").replace("\n", " ")
    while "  " in sanitized:
        sanitized = sanitized.replace("  ", " ")
    return sanitized
