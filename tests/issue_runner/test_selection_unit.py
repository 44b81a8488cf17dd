"""Unit tests for issue selection."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from src.issue_runner.config import IssueRunnerConfig
from src.issue_runner.errors.exceptions import IssueSelectionError
from src.issue_runner.github.client import GitHubAPIError
from src.issue_runner.github.models import Issue
from src.issue_runner.github.tracker import IssueNotFoundError
from src.issue_runner.selection import select_issues, skip_reason


def run_async(coro):
    return asyncio.run(coro)


def _config(labels=None, exclude_labels=None) -> IssueRunnerConfig:
    return IssueRunnerConfig.model_validate(
        {
            "github": {
                "owner": "acme",
                "repo": "widgets",
                "token": "ghp_test",
                "labels": labels if labels is not None else ["auto"],
                "exclude_labels": exclude_labels or [],
            },
            "llm": {"api_key": "sk-test"},
        }
    )


def _issue(number, labels=(), assignee=None, state="open") -> Issue:
    return Issue(
        number=number,
        title=f"Issue {number}",
        labels=list(labels),
        assignee=assignee,
        state=state,
    )


@pytest.fixture
def tracker():
    mock = AsyncMock()
    mock.list_open_issues.return_value = []
    return mock


class TestLabelSelection:
    def test_filters_excluded_assigned_and_managed(self, tracker):
        tracker.list_open_issues.return_value = [
            _issue(1, ["auto"]),
            _issue(2, ["auto", "wontfix"]),
            _issue(3, ["auto"], assignee="dev1"),
            _issue(4, ["auto", "issue-runner:processing"]),
            _issue(5, ["auto", "issue-runner:completed"]),
            _issue(6, ["auto", "issue-runner:failed"]),
            _issue(7, ["auto", "issue-runner:error-git"]),
            _issue(8, ["auto", "bug"]),
        ]

        selected = run_async(
            select_issues(tracker, _config(exclude_labels=["wontfix"]))
        )

        assert [i.number for i in selected] == [1, 8]
        tracker.list_open_issues.assert_awaited_once_with(["auto"])

    def test_no_labels_and_no_ids_is_fatal(self, tracker):
        with pytest.raises(IssueSelectionError):
            run_async(select_issues(tracker, _config(labels=[])))
        tracker.list_open_issues.assert_not_awaited()

    def test_fetch_failure_is_fatal(self, tracker):
        tracker.list_open_issues.side_effect = GitHubAPIError("GitHub API error: 500")
        with pytest.raises(IssueSelectionError, match="Failed to fetch issues"):
            run_async(select_issues(tracker, _config()))

    def test_skip_reason(self):
        assert skip_reason(_issue(1, ["x"]), ["x"]) == "excluded label x"
        assert skip_reason(_issue(1), []) is None


class TestExplicitSelection:
    def test_fetches_each_issue_in_order(self, tracker):
        tracker.get_issue.side_effect = lambda n: _issue(n)

        selected = run_async(select_issues(tracker, _config(labels=[]), [42, 7, 42]))

        assert [i.number for i in selected] == [42, 7]
        tracker.list_open_issues.assert_not_awaited()

    def test_explicit_ids_skip_label_filters(self, tracker):
        tracker.get_issue.return_value = _issue(9, ["issue-runner:failed"], assignee="dev1")
        selected = run_async(select_issues(tracker, _config(), [9]))
        assert [i.number for i in selected] == [9]

    def test_closed_issue_is_fatal(self, tracker):
        tracker.get_issue.side_effect = [_issue(1), _issue(2, state="closed")]

        with pytest.raises(IssueSelectionError) as exc_info:
            run_async(select_issues(tracker, _config(), [1, 2]))

        assert exc_info.value.issue_number == 2
        assert "closed" in str(exc_info.value)

    def test_missing_issue_is_fatal(self, tracker):
        tracker.get_issue.side_effect = IssueNotFoundError(404)
        with pytest.raises(IssueSelectionError) as exc_info:
            run_async(select_issues(tracker, _config(), [404]))
        assert exc_info.value.issue_number == 404
