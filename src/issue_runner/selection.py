"""Issue selection.

Decides which issues a run processes, before any processing starts:
- Explicit issue numbers: each is fetched and must be an open issue
- Otherwise: open issues carrying every configured label, minus those
  with an exclude label, an assignee or a runner control label

Every failure here is fatal for the run.
"""

import logging
from typing import List, Optional, Sequence

from src.issue_runner.config import IssueRunnerConfig
from src.issue_runner.errors.exceptions import IssueSelectionError
from src.issue_runner.errors.taxonomy import control_labels
from src.issue_runner.github.client import GitHubAPIError
from src.issue_runner.github.models import Issue
from src.issue_runner.github.tracker import IssueTracker


logger = logging.getLogger(__name__)


def skip_reason(issue: Issue, exclude_labels: Sequence[str]) -> Optional[str]:
    """Return why a label-selected issue is skipped, or None to keep it."""
    labels = set(issue.labels)
    excluded = labels.intersection(exclude_labels)
    if excluded:
        return f"excluded label {sorted(excluded)[0]}"
    if issue.assignee:
        return f"assigned to {issue.assignee}"
    managed = labels & control_labels()
    if managed:
        return f"already handled ({sorted(managed)[0]})"
    return None


async def select_issues(
    tracker: IssueTracker,
    config: IssueRunnerConfig,
    issue_numbers: Optional[Sequence[int]] = None,
) -> List[Issue]:
    """Determine the issues to process.

    Args:
        tracker: Issue tracker to fetch from.
        config: Run configuration (labels and exclude labels).
        issue_numbers: Explicit issue numbers; takes precedence over labels.

    Returns:
        Issues in processing order.

    Raises:
        IssueSelectionError: If an explicit issue cannot be fetched or is
            not open, if the tracker fetch fails, or if neither issue
            numbers nor labels are configured.
    """
    if issue_numbers:
        return await _select_explicit(tracker, issue_numbers)

    labels = config.github.labels
    if not labels:
        raise IssueSelectionError(
            "No issues selected: pass issue numbers or configure github.labels"
        )

    try:
        candidates = await tracker.list_open_issues(labels)
    except GitHubAPIError as e:
        raise IssueSelectionError(f"Failed to fetch issues from GitHub: {e}") from e

    selected = []
    for issue in candidates:
        reason = skip_reason(issue, config.github.exclude_labels)
        if reason:
            logger.info(
                "Skipping issue",
                extra={"issue_number": issue.number, "reason": reason},
            )
            continue
        selected.append(issue)

    logger.info(
        "Issues selected by label",
        extra={
            "labels": labels,
            "candidates": len(candidates),
            "selected": len(selected),
        },
    )
    return selected


async def _select_explicit(
    tracker: IssueTracker, issue_numbers: Sequence[int]
) -> List[Issue]:
    issues = []
    seen = set()
    for number in issue_numbers:
        if number in seen:
            continue
        seen.add(number)

        try:
            issue = await tracker.get_issue(number)
        except GitHubAPIError as e:
            raise IssueSelectionError(
                f"Failed to fetch issue #{number}: {e}", issue_number=number
            ) from e

        if not issue.is_open:
            raise IssueSelectionError(
                f"Issue #{number} is {issue.state}, only open issues can be processed",
                issue_number=number,
            )
        issues.append(issue)

    logger.info(
        "Issues selected explicitly",
        extra={"issue_numbers": [issue.number for issue in issues]},
    )
    return issues
