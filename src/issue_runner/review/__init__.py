"""LLM code review and the critique-and-fix loop."""

from src.issue_runner.review.loop import ReviewLoop, ReviewOutcome
from src.issue_runner.review.reviewer import CodeReviewer, ReviewResult, has_issues

__all__ = [
    "CodeReviewer",
    "ReviewLoop",
    "ReviewOutcome",
    "ReviewResult",
    "has_issues",
]
