"""Unit tests for the GitHub client and issue tracker.

HTTP traffic is served by httpx.MockTransport handlers, so requests are
built and parsed by the real client code.
"""

import asyncio
import json
from typing import Callable, List

import httpx
import pytest

from src.issue_runner.github.client import GitHubAPIError, GitHubClient, RateLimitError
from src.issue_runner.github.models import Issue, PullRequestRequest
from src.issue_runner.github.tracker import GitHubIssueTracker, IssueNotFoundError, IssueTracker


def run_async(coro):
    return asyncio.run(coro)


def _issue_payload(number: int, **overrides):
    payload = {
        "number": number,
        "title": f"Issue {number}",
        "body": "Body",
        "state": "open",
        "labels": [{"name": "auto"}],
        "assignee": None,
        "created_at": "2026-01-02T03:04:05Z",
        "updated_at": "2026-01-02T03:04:05Z",
        "html_url": f"https://github.com/acme/widgets/issues/{number}",
    }
    payload.update(overrides)
    return payload


def _client(handler: Callable[[httpx.Request], httpx.Response], **kwargs) -> GitHubClient:
    return GitHubClient(
        "acme",
        "widgets",
        token="ghp_test",
        base_delay=0,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestIssueModel:
    def test_from_api(self):
        issue = Issue.from_api(
            _issue_payload(5, assignee={"login": "dev1"}, labels=[{"name": "a"}, {"name": "b"}])
        )
        assert issue.number == 5
        assert issue.labels == ["a", "b"]
        assert issue.assignee == "dev1"
        assert issue.is_open
        assert issue.is_pull_request is False

    def test_pull_request_flag(self):
        issue = Issue.from_api(_issue_payload(6, pull_request={"url": "x"}))
        assert issue.is_pull_request is True

    def test_frozen(self):
        issue = Issue.from_api(_issue_payload(5))
        with pytest.raises(Exception):
            issue.title = "changed"


class TestListIssues:
    def test_filters_pull_requests_and_sends_labels(self):
        seen: List[httpx.Request] = []

        def handler(request):
            seen.append(request)
            return httpx.Response(
                200,
                json=[_issue_payload(1), _issue_payload(2, pull_request={"url": "x"})],
            )

        issues = run_async(_client(handler).list_issues(labels=["auto", "bug"]))

        assert [i.number for i in issues] == [1]
        params = seen[0].url.params
        assert params["labels"] == "auto,bug"
        assert params["state"] == "open"
        assert params["direction"] == "asc"
        assert seen[0].headers["Authorization"] == "Bearer ghp_test"

    def test_paginates_until_short_page(self):
        def handler(request):
            page = int(request.url.params["page"])
            if page == 1:
                return httpx.Response(200, json=[_issue_payload(n) for n in range(1, 101)])
            return httpx.Response(200, json=[_issue_payload(101)])

        issues = run_async(_client(handler).list_issues(labels=["auto"]))

        assert len(issues) == 101


class TestRequestRetries:
    def test_retries_transient_status(self):
        calls = {"count": 0}

        def handler(request):
            calls["count"] += 1
            if calls["count"] < 3:
                return httpx.Response(502)
            return httpx.Response(200, json=_issue_payload(9))

        issue = run_async(_client(handler, max_retries=3).get_issue(9))

        assert issue.number == 9
        assert calls["count"] == 3

    def test_gives_up_after_retries(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        with pytest.raises(GitHubAPIError) as exc_info:
            run_async(_client(handler, max_retries=2).get_issue(9))

        assert "after 2 retries" in str(exc_info.value)

    def test_client_error_not_retried(self):
        calls = {"count": 0}

        def handler(request):
            calls["count"] += 1
            return httpx.Response(404, json={"message": "Not Found"})

        with pytest.raises(GitHubAPIError) as exc_info:
            run_async(_client(handler).get_issue(9))

        assert exc_info.value.status_code == 404
        assert calls["count"] == 1
        assert str(exc_info.value).startswith("GitHub API error: 404")

    def test_rate_limit(self):
        def handler(request):
            return httpx.Response(
                403, headers={"x-ratelimit-remaining": "0", "retry-after": "30"}
            )

        with pytest.raises(RateLimitError) as exc_info:
            run_async(_client(handler).get_issue(9))

        assert exc_info.value.retry_after == 30


class TestWrites:
    def test_create_pull_request(self):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return httpx.Response(
                201, json={"number": 77, "html_url": "https://github.com/acme/widgets/pull/77"}
            )

        result = run_async(
            _client(handler).create_pull_request(
                PullRequestRequest(title="Fix #1: x", body="Closes #1", head="issue-1", base="main")
            )
        )

        assert result.number == 77
        assert result.url.endswith("/pull/77")
        assert seen[0]["head"] == "issue-1"
        assert seen[0]["base"] == "main"

    def test_remove_label_quotes_name_and_ignores_404(self):
        seen = []

        def handler(request):
            seen.append(request.url.path)
            return httpx.Response(404)

        run_async(_client(handler).remove_label(3, "issue-runner:processing"))

        assert seen[0].endswith("/issues/3/labels/issue-runner:processing")

    def test_create_label_existing_returns_false(self):
        def handler(request):
            return httpx.Response(422, json={"message": "already_exists"})

        assert run_async(_client(handler).create_label("x")) is False


class TestGitHubIssueTracker:
    def test_implements_protocol(self):
        tracker = GitHubIssueTracker(_client(lambda r: httpx.Response(200, json=[])))
        assert isinstance(tracker, IssueTracker)

    def test_get_issue_not_found(self):
        tracker = GitHubIssueTracker(_client(lambda r: httpx.Response(404)))
        with pytest.raises(IssueNotFoundError) as exc_info:
            run_async(tracker.get_issue(12))
        assert "#12" in str(exc_info.value)

    def test_get_issue_rejects_pull_requests(self):
        tracker = GitHubIssueTracker(
            _client(lambda r: httpx.Response(200, json=_issue_payload(12, pull_request={})))
        )
        with pytest.raises(IssueNotFoundError, match="pull request"):
            run_async(tracker.get_issue(12))

    def test_label_changes_are_best_effort(self):
        tracker = GitHubIssueTracker(_client(lambda r: httpx.Response(500), max_retries=0))
        async def change_labels():
            return await tracker.add_label(1, "x"), await tracker.remove_label(1, "x")

        assert run_async(change_labels()) == (False, False)

    def test_add_comment_propagates_errors(self):
        tracker = GitHubIssueTracker(_client(lambda r: httpx.Response(500), max_retries=0))
        with pytest.raises(GitHubAPIError):
            run_async(tracker.add_comment(1, "hello"))
