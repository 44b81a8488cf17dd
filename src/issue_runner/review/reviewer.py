"""LLM code reviewer.

Asks the model to critique a diff against the issue it implements. The
verdict is read from the answer text: any mention of issue, problem or fix
vocabulary counts as findings.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from src.issue_runner.agent.conversation import Conversation
from src.issue_runner.agent.llm import LLMClient
from src.issue_runner.agent.prompts import build_review_prompt
from src.issue_runner.github.models import Issue


logger = logging.getLogger(__name__)

_FINDING_SIGNALS = re.compile(r"issue|problem|fix")


def has_issues(review_text: str) -> bool:
    """Return whether a review answer reports findings.

    Example:
        >>> has_issues("APPROVED")
        False
        >>> has_issues("There is a problem with the error handling")
        True
    """
    return bool(_FINDING_SIGNALS.search(review_text.lower()))


@dataclass(frozen=True)
class ReviewResult:
    """Verdict of one review pass.

    Attributes:
        has_issues: Whether the review reported findings.
        findings: The full review text.
        tokens_used: Tokens spent on the review call.
    """

    has_issues: bool
    findings: str
    tokens_used: int = 0

    @property
    def approved(self) -> bool:
        return not self.has_issues


class CodeReviewer:
    """Reviews diffs with the model, without tools.

    Reviews use half of the client's completion token limit.
    """

    def __init__(self, llm: LLMClient, max_tokens: Optional[int] = None):
        self.llm = llm
        self.max_tokens = max_tokens or max(1, llm.max_tokens // 2)

    async def review(self, issue: Issue, diff: str) -> ReviewResult:
        """Review a diff for an issue.

        Raises:
            LLMAPIError: If the model call fails.
        """
        conversation = Conversation()
        conversation.add_user_text(build_review_prompt(issue, diff))

        logger.info(
            "Reviewing changes",
            extra={"issue_number": issue.number, "diff_length": len(diff)},
        )
        response = await self.llm.complete(conversation, max_tokens=self.max_tokens)

        result = ReviewResult(
            has_issues=has_issues(response.text),
            findings=response.text,
            tokens_used=response.total_tokens,
        )
        logger.info(
            "Review completed",
            extra={
                "issue_number": issue.number,
                "has_issues": result.has_issues,
                "tokens_used": result.tokens_used,
            },
        )
        return result
