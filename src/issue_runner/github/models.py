"""GitHub data models.

This module defines the models exchanged with the issue tracker:
- Issue: Immutable snapshot of a tracked issue (the unit of work)
- PullRequestRequest: Parameters for opening a pull request
- PullRequestResult: The created pull request
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class Issue(BaseModel):
    """Snapshot of a GitHub issue fetched once per processing attempt.

    The snapshot is never mutated locally. Label changes are sent to the
    tracker and are not reflected here.

    Attributes:
        number: Issue number, unique within the repository.
        title: Issue title.
        body: Issue description, if any.
        state: Lifecycle state.
        labels: Label names at fetch time.
        assignee: Login of the assignee, if any.
        created_at: Creation timestamp.
        updated_at: Last update timestamp.
        html_url: Browser URL of the issue.
        is_pull_request: Whether the tracker entry is a pull request.
    """

    model_config = ConfigDict(frozen=True)

    number: int = Field(..., gt=0)
    title: str
    body: Optional[str] = None
    state: Literal["open", "closed"] = "open"
    labels: List[str] = Field(default_factory=list)
    assignee: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    html_url: str = ""
    is_pull_request: bool = False

    @property
    def is_open(self) -> bool:
        return self.state == "open"

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Issue":
        """Build an Issue from a GitHub REST API issue payload."""
        labels = [
            label["name"] if isinstance(label, dict) else str(label)
            for label in data.get("labels") or []
        ]
        assignee = data.get("assignee") or None
        return cls(
            number=data["number"],
            title=data.get("title") or "",
            body=data.get("body"),
            state=data.get("state", "open"),
            labels=labels,
            assignee=assignee.get("login") if isinstance(assignee, dict) else None,
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
            html_url=data.get("html_url") or "",
            is_pull_request="pull_request" in data,
        )


class PullRequestRequest(BaseModel):
    """Parameters for opening a pull request.

    Attributes:
        title: Pull request title.
        body: Pull request description (markdown).
        head: Source branch.
        base: Target branch.
        draft: Whether to open as draft.
    """

    title: str = Field(..., min_length=1)
    body: str = ""
    head: str = Field(..., min_length=1)
    base: str = Field(..., min_length=1)
    draft: bool = False


class PullRequestResult(BaseModel):
    """A created pull request.

    Attributes:
        number: Pull request number.
        url: Browser URL of the pull request.
    """

    number: int
    url: str
