"""GitHub issue tracker integration.

- GitHubClient: Async REST client with retries and rate limit handling
- IssueTracker: Contract the pipeline depends on
- GitHubIssueTracker: IssueTracker over GitHubClient with best-effort labels
"""

from src.issue_runner.github.client import GitHubAPIError, GitHubClient, RateLimitError
from src.issue_runner.github.models import Issue, PullRequestRequest, PullRequestResult
from src.issue_runner.github.tracker import (
    GitHubIssueTracker,
    IssueNotFoundError,
    IssueTracker,
)

__all__ = [
    "GitHubAPIError",
    "GitHubClient",
    "GitHubIssueTracker",
    "Issue",
    "IssueNotFoundError",
    "IssueTracker",
    "PullRequestRequest",
    "PullRequestResult",
    "RateLimitError",
]
