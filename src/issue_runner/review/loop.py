"""Review loop: critique the workspace diff and fix findings.

For each of ``iterations`` rounds the current diff is reviewed. An empty
diff or a clean review ends the loop early as approved. Findings are handed
back to the agent as fix instructions; a fix invocation that does not
finish fails the stage.

If every round produced findings, one final review is mandatory and must
come back clean, otherwise the stage fails with UnresolvedReviewError.
"""

import logging
from dataclasses import dataclass
from typing import Protocol

from src.issue_runner.agent.loop import AgentResult
from src.issue_runner.errors.exceptions import ReviewFixError, UnresolvedReviewError
from src.issue_runner.github.models import Issue
from src.issue_runner.review.reviewer import ReviewResult


logger = logging.getLogger(__name__)


class DiffSource(Protocol):
    async def get_diff(self, path: str) -> str: ...


class Reviewer(Protocol):
    async def review(self, issue: Issue, diff: str) -> ReviewResult: ...


class FixAgent(Protocol):
    async def apply_review_fixes(
        self, issue: Issue, workspace_path: str, findings: str
    ) -> AgentResult: ...


@dataclass(frozen=True)
class ReviewOutcome:
    """Result of an approved review loop.

    Attributes:
        reviews: Number of review calls made.
        fixes_applied: Number of fix invocations that completed.
        tokens_used: Tokens spent on reviews and fixes.
    """

    reviews: int
    fixes_applied: int
    tokens_used: int


class ReviewLoop:
    """Bounded critique-and-fix cycle over a workspace.

    Example:
        >>> loop = ReviewLoop(reviewer, agent, git_manager, iterations=2)
        >>> outcome = await loop.run(issue, "/work/issue-42")
    """

    def __init__(
        self,
        reviewer: Reviewer,
        agent: FixAgent,
        diff_source: DiffSource,
        iterations: int,
    ):
        if iterations < 0:
            raise ValueError("iterations cannot be negative")
        self.reviewer = reviewer
        self.agent = agent
        self.diff_source = diff_source
        self.iterations = iterations

    async def run(self, issue: Issue, workspace_path: str) -> ReviewOutcome:
        """Review and fix until approved.

        Returns:
            Counts for the approved loop.

        Raises:
            ReviewFixError: If a fix invocation hits its iteration cap.
            UnresolvedReviewError: If the final review still has findings.
            LLMAPIError: If a model call fails.
        """
        reviews = 0
        fixes = 0
        tokens = 0

        for iteration in range(1, self.iterations + 1):
            diff = await self.diff_source.get_diff(workspace_path)
            if not diff.strip():
                logger.info(
                    "Nothing to review",
                    extra={"issue_number": issue.number, "iteration": iteration},
                )
                return ReviewOutcome(reviews, fixes, tokens)

            review = await self.reviewer.review(issue, diff)
            reviews += 1
            tokens += review.tokens_used
            if not review.has_issues:
                logger.info(
                    "Review approved",
                    extra={"issue_number": issue.number, "iteration": iteration},
                )
                return ReviewOutcome(reviews, fixes, tokens)

            fix = await self.agent.apply_review_fixes(
                issue, workspace_path, review.findings
            )
            tokens += fix.tokens_used
            if not fix.success:
                raise ReviewFixError(iteration, fix.message)
            fixes += 1

        diff = await self.diff_source.get_diff(workspace_path)
        if not diff.strip():
            return ReviewOutcome(reviews, fixes, tokens)

        final = await self.reviewer.review(issue, diff)
        reviews += 1
        tokens += final.tokens_used
        if final.has_issues:
            logger.warning(
                "Review findings remain after final check",
                extra={"issue_number": issue.number, "reviews": reviews},
            )
            raise UnresolvedReviewError(final.findings)

        logger.info(
            "Review approved on final check",
            extra={"issue_number": issue.number, "reviews": reviews},
        )
        return ReviewOutcome(reviews, fixes, tokens)
