"""GitHub REST API client for one repository.

This module provides an async wrapper around the GitHub API for:
- Listing and fetching issues
- Managing labels (create, add, remove)
- Creating comments on issues
- Creating pull requests

Includes rate limit handling and retry logic for API resilience.
"""

import asyncio
import logging
import random
import time
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from src.issue_runner.github.models import Issue, PullRequestRequest, PullRequestResult


logger = logging.getLogger(__name__)

ISSUES_PAGE_SIZE = 100


class GitHubAPIError(Exception):
    """Raised when a GitHub API request fails.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status code from the response.
        response_body: Response body from GitHub API.
        request_url: The URL that was requested.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url
        super().__init__(message)


class RateLimitError(GitHubAPIError):
    """Raised when GitHub API rate limit is exceeded.

    Attributes:
        reset_at: Unix timestamp when the rate limit resets.
        retry_after: Seconds to wait before retrying.
    """

    def __init__(
        self,
        message: str,
        reset_at: Optional[int] = None,
        retry_after: Optional[int] = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.reset_at = reset_at
        self.retry_after = retry_after


class GitHubClient:
    """Async GitHub API client bound to one repository.

    Implements:
    - Automatic retry with exponential backoff for transient failures
    - Rate limit handling by respecting X-RateLimit-* headers
    - Support for both github.com and GitHub Enterprise Server

    Attributes:
        owner: Repository owner (user or organization).
        repo: Repository name.
        token: GitHub API token.
        base_url: Base URL for GitHub API (default: https://api.github.com).
        max_retries: Maximum number of retry attempts for transient failures.
        base_delay: Base delay in seconds for exponential backoff.
        max_delay: Maximum delay in seconds between retries.
        timeout: Request timeout in seconds.

    Example:
        >>> async with GitHubClient("octo", "app", token="ghp_xxx") as client:
        ...     issues = await client.list_issues(labels=["auto"])
    """

    # HTTP status codes that should trigger a retry
    RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}

    def __init__(
        self,
        owner: str,
        repo: str,
        token: str,
        base_url: str = "https://api.github.com",
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the GitHub client.

        Args:
            owner: Repository owner.
            repo: Repository name.
            token: GitHub API token for authentication.
            base_url: Base URL for GitHub API. Use this to support
                      GitHub Enterprise Server endpoints.
            max_retries: Maximum number of retry attempts.
            base_delay: Base delay in seconds for exponential backoff.
            max_delay: Maximum delay in seconds between retries.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (used by tests).
        """
        self.owner = owner
        self.repo = repo
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def repo_path(self) -> str:
        return f"/repos/{self.owner}/{self.repo}"

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, creating it if necessary."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._default_headers(),
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    def _default_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "issue-runner/0.1",
        }

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _calculate_backoff(self, attempt: int) -> float:
        """Exponential backoff with full jitter.

        Args:
            attempt: The current retry attempt (0-indexed).

        Returns:
            Delay in seconds before the next retry.
        """
        exponential_delay = self.base_delay * (2 ** attempt)
        capped_delay = min(exponential_delay, self.max_delay)
        return random.uniform(0, capped_delay)

    def _parse_int_header(self, headers: httpx.Headers, name: str) -> Optional[int]:
        value = headers.get(name)
        if value is not None:
            try:
                return int(value)
            except ValueError:
                pass
        return None

    def _raise_rate_limit(self, response: httpx.Response) -> None:
        """Raise RateLimitError with information about when to retry."""
        reset_at = self._parse_int_header(response.headers, "x-ratelimit-reset")

        retry_after = None
        if reset_at is not None:
            retry_after = max(0, reset_at - int(time.time()))

        retry_after_header = self._parse_int_header(response.headers, "retry-after")
        if retry_after_header is not None:
            retry_after = retry_after_header

        logger.warning(
            "GitHub API rate limit exceeded",
            extra={
                "reset_at": reset_at,
                "retry_after": retry_after,
                "limit": self._parse_int_header(response.headers, "x-ratelimit-limit"),
            },
        )

        raise RateLimitError(
            message="GitHub API rate limit exceeded",
            status_code=response.status_code,
            reset_at=reset_at,
            retry_after=retry_after,
        )

    async def _request(
        self,
        method: str,
        path: str,
        json_data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """Make an HTTP request with retry logic.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE, PATCH).
            path: API path (e.g., /repos/owner/repo/issues/1/comments).
            json_data: Optional JSON body for the request.
            params: Optional query parameters.

        Returns:
            The HTTP response from GitHub.

        Raises:
            GitHubAPIError: If the request fails after all retries.
            RateLimitError: If rate limit is exceeded.
        """
        last_exception: Optional[Exception] = None

        for attempt in range(self.max_retries + 1):
            try:
                response = await self.client.request(
                    method=method,
                    url=path,
                    json=json_data,
                    params=params,
                )
            except httpx.RequestError as e:
                last_exception = e
                if attempt < self.max_retries:
                    delay = self._calculate_backoff(attempt)
                    logger.warning(
                        "GitHub request error, retrying",
                        extra={
                            "error": str(e),
                            "error_type": type(e).__name__,
                            "attempt": attempt + 1,
                            "max_retries": self.max_retries,
                            "delay": delay,
                            "api_path": path,
                        },
                    )
                    await asyncio.sleep(delay)
                continue

            if response.status_code == 403:
                remaining = self._parse_int_header(
                    response.headers, "x-ratelimit-remaining"
                )
                if remaining == 0:
                    self._raise_rate_limit(response)

            if response.status_code == 429:
                self._raise_rate_limit(response)

            if (
                response.status_code in self.RETRYABLE_STATUS_CODES
                and attempt < self.max_retries
            ):
                delay = self._calculate_backoff(attempt)
                logger.warning(
                    "Retryable error from GitHub API",
                    extra={
                        "status_code": response.status_code,
                        "attempt": attempt + 1,
                        "max_retries": self.max_retries,
                        "delay": delay,
                        "api_path": path,
                    },
                )
                await asyncio.sleep(delay)
                continue

            if response.status_code >= 400:
                error_body = response.text
                logger.error(
                    "GitHub API error",
                    extra={
                        "status_code": response.status_code,
                        "api_path": path,
                        "method": method,
                        "response_body": error_body[:500],
                    },
                )
                raise GitHubAPIError(
                    message=f"GitHub API error: {response.status_code} {method} {path}",
                    status_code=response.status_code,
                    response_body=error_body,
                    request_url=str(response.url),
                )

            return response

        logger.error(
            "GitHub API request failed after all retries",
            extra={
                "api_path": path,
                "method": method,
                "max_retries": self.max_retries,
                "last_error": str(last_exception),
            },
        )
        raise GitHubAPIError(
            message=(
                f"GitHub API request failed after {self.max_retries} retries: "
                f"{type(last_exception).__name__}: {last_exception}"
            ),
            request_url=f"{self.base_url}{path}",
        )

    async def list_issues(
        self,
        labels: Optional[List[str]] = None,
        state: str = "open",
    ) -> List[Issue]:
        """List repository issues, oldest first, excluding pull requests.

        Args:
            labels: Only issues carrying all of these labels.
            state: Issue state filter.

        Returns:
            Matching issues across all result pages.
        """
        params: Dict[str, Any] = {
            "state": state,
            "sort": "created",
            "direction": "asc",
            "per_page": ISSUES_PAGE_SIZE,
        }
        if labels:
            params["labels"] = ",".join(labels)

        issues: List[Issue] = []
        page = 1
        while True:
            response = await self._request(
                "GET", f"{self.repo_path}/issues", params={**params, "page": page}
            )
            batch = response.json()
            issues.extend(
                Issue.from_api(item) for item in batch if "pull_request" not in item
            )
            if len(batch) < ISSUES_PAGE_SIZE:
                break
            page += 1

        logger.info(
            "Fetched issues",
            extra={"labels": labels or [], "count": len(issues), "pages": page},
        )
        return issues

    async def get_issue(self, issue_number: int) -> Issue:
        """Get one issue (or pull request) by number.

        Raises:
            GitHubAPIError: If the request fails (404 when it does not exist).
        """
        logger.debug("Getting issue details", extra={"issue_number": issue_number})
        response = await self._request(
            "GET", f"{self.repo_path}/issues/{issue_number}"
        )
        return Issue.from_api(response.json())

    async def create_comment(self, issue_number: int, body: str) -> Dict[str, Any]:
        """Create a comment on an issue.

        Args:
            issue_number: Issue number to comment on.
            body: Comment body in markdown format.

        Returns:
            The created comment data from GitHub API.
        """
        logger.info(
            "Creating comment on issue",
            extra={"issue_number": issue_number, "body_length": len(body)},
        )
        response = await self._request(
            "POST",
            f"{self.repo_path}/issues/{issue_number}/comments",
            json_data={"body": body},
        )
        return response.json()

    async def add_labels(self, issue_number: int, labels: List[str]) -> List[Dict[str, Any]]:
        """Add labels to an issue.

        Returns:
            List of all labels on the issue after adding.
        """
        logger.info(
            "Adding labels to issue",
            extra={"issue_number": issue_number, "labels": labels},
        )
        response = await self._request(
            "POST",
            f"{self.repo_path}/issues/{issue_number}/labels",
            json_data={"labels": labels},
        )
        return response.json()

    async def remove_label(self, issue_number: int, label: str) -> None:
        """Remove a label from an issue.

        Raises:
            GitHubAPIError: If the request fails (except 404 which is ignored).
        """
        path = f"{self.repo_path}/issues/{issue_number}/labels/{quote(label, safe='')}"
        logger.info(
            "Removing label from issue",
            extra={"issue_number": issue_number, "label": label},
        )
        try:
            await self._request("DELETE", path)
        except GitHubAPIError as e:
            # 404 means label wasn't on the issue - that's fine
            if e.status_code == 404:
                logger.debug(
                    "Label not found on issue (already removed)",
                    extra={"issue_number": issue_number, "label": label},
                )
                return
            raise

    async def create_label(
        self,
        name: str,
        color: str = "ededed",
        description: str = "",
    ) -> bool:
        """Create a repository label.

        Returns:
            True if created, False if it already existed.
        """
        try:
            await self._request(
                "POST",
                f"{self.repo_path}/labels",
                json_data={"name": name, "color": color, "description": description},
            )
        except GitHubAPIError as e:
            # 422 means a label with this name already exists
            if e.status_code == 422:
                return False
            raise
        logger.info("Created label", extra={"label": name})
        return True

    async def create_pull_request(self, request: PullRequestRequest) -> PullRequestResult:
        """Create a pull request.

        Raises:
            GitHubAPIError: If the request fails.
        """
        logger.info(
            "Creating pull request",
            extra={"title": request.title, "head": request.head, "base": request.base},
        )
        response = await self._request(
            "POST",
            f"{self.repo_path}/pulls",
            json_data={
                "title": request.title,
                "body": request.body,
                "head": request.head,
                "base": request.base,
                "draft": request.draft,
            },
        )
        data = response.json()
        result = PullRequestResult(number=data["number"], url=data["html_url"])
        logger.info(
            "Pull request created successfully",
            extra={"pr_number": result.number, "pr_url": result.url},
        )
        return result
