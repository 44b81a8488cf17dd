"""Issue tracker interface used by the pipeline.

IssueTracker is the contract the orchestrator depends on.
GitHubIssueTracker implements it over GitHubClient and applies the
pipeline's policies: label operations are best effort and report a status
instead of raising, and pull requests are never accepted as issues.
"""

import logging
from typing import List, Protocol, runtime_checkable

from src.issue_runner.github.client import GitHubAPIError, GitHubClient
from src.issue_runner.github.models import Issue, PullRequestRequest, PullRequestResult


logger = logging.getLogger(__name__)


class IssueNotFoundError(GitHubAPIError):
    """Raised when an issue number does not refer to an issue.

    Attributes:
        issue_number: The requested number.
    """

    def __init__(self, issue_number: int, reason: str = "not found"):
        self.issue_number = issue_number
        super().__init__(
            f"GitHub issue #{issue_number} {reason}",
            status_code=404,
        )


@runtime_checkable
class IssueTracker(Protocol):
    """Operations the pipeline performs against the issue tracker."""

    async def list_open_issues(self, labels: List[str]) -> List[Issue]:
        """Open issues carrying all of the given labels, oldest first."""
        ...

    async def get_issue(self, number: int) -> Issue:
        """Fetch one issue.

        Raises:
            IssueNotFoundError: If it does not exist or is a pull request.
        """
        ...

    async def add_label(self, number: int, label: str) -> bool:
        """Add a label; returns False instead of raising on failure."""
        ...

    async def remove_label(self, number: int, label: str) -> bool:
        """Remove a label; returns False instead of raising on failure."""
        ...

    async def add_comment(self, number: int, body: str) -> None:
        ...

    async def open_pull_request(self, request: PullRequestRequest) -> PullRequestResult:
        ...

    async def ensure_label(self, name: str, color: str = "ededed", description: str = "") -> bool:
        """Create a label if missing; returns False instead of raising on failure."""
        ...


class GitHubIssueTracker:
    """IssueTracker backed by the GitHub REST API."""

    def __init__(self, client: GitHubClient):
        self.client = client

    async def list_open_issues(self, labels: List[str]) -> List[Issue]:
        return await self.client.list_issues(labels=labels, state="open")

    async def get_issue(self, number: int) -> Issue:
        try:
            issue = await self.client.get_issue(number)
        except GitHubAPIError as e:
            if e.status_code in (404, 410):
                raise IssueNotFoundError(number) from e
            raise
        if issue.is_pull_request:
            raise IssueNotFoundError(number, "is a pull request, not an issue")
        return issue

    async def add_label(self, number: int, label: str) -> bool:
        try:
            await self.client.add_labels(number, [label])
        except GitHubAPIError as e:
            logger.warning(
                "Failed to add label",
                extra={"issue_number": number, "label": label, "error": str(e)},
            )
            return False
        return True

    async def remove_label(self, number: int, label: str) -> bool:
        try:
            await self.client.remove_label(number, label)
        except GitHubAPIError as e:
            logger.warning(
                "Failed to remove label",
                extra={"issue_number": number, "label": label, "error": str(e)},
            )
            return False
        return True

    async def add_comment(self, number: int, body: str) -> None:
        await self.client.create_comment(number, body)

    async def open_pull_request(self, request: PullRequestRequest) -> PullRequestResult:
        return await self.client.create_pull_request(request)

    async def ensure_label(self, name: str, color: str = "ededed", description: str = "") -> bool:
        try:
            await self.client.create_label(name, color=color, description=description)
        except GitHubAPIError as e:
            logger.warning(
                "Failed to ensure label exists",
                extra={"label": name, "error": str(e)},
            )
            return False
        return True
