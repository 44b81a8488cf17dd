"""Pipeline orchestrator driving issues from selection to pull request.

Each issue runs through the stages in order:
workspace → implementation → verification → review → testing → commit →
push → publish.

Review, testing, push and publish are optional and skipped according to
the workflow configuration and CLI overrides. A fault in any stage ends
that issue's processing: the fault is classified, the issue is labeled
and commented, and a failure is recorded. The workspace is removed in
every case.

Issues run sequentially, or on a fixed number of asyncio workers that
claim issues from a shared WorkCursor when concurrency is enabled.

Source:
- src/issue_runner/state/machine.py (IssueStateMachine)
- src/issue_runner/agent/loop.py (AgentLoop)
- src/issue_runner/review/loop.py (ReviewLoop)
- src/issue_runner/git/manager.py (GitManager)
- src/issue_runner/github/tracker.py (IssueTracker)
- src/issue_runner/reporting/ (events, statistics)
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence

from src.issue_runner.agent.loop import AgentLoop
from src.issue_runner.config import IssueRunnerConfig
from src.issue_runner.errors.exceptions import (
    AgentIncompleteError,
    BuildError,
    NoChangesError,
    TestError,
)
from src.issue_runner.errors.formatting import format_diagnostic
from src.issue_runner.errors.taxonomy import (
    COMPLETED_LABEL,
    PROCESSING_LABEL,
    classify_error,
    label_for,
)
from src.issue_runner.git.manager import GitManager, Workspace
from src.issue_runner.github.models import Issue, PullRequestRequest
from src.issue_runner.github.tracker import IssueTracker
from src.issue_runner.reporting.events import (
    EventEmitter,
    EventType,
    NullEventEmitter,
    PipelineEvent,
)
from src.issue_runner.reporting.statistics import ProcessResult, RunStatistics
from src.issue_runner.review.loop import ReviewLoop, Reviewer
from src.issue_runner.state.machine import IssueStateMachine
from src.issue_runner.state.models import IssueStage


logger = logging.getLogger(__name__)

MAX_BODY_IN_COMMIT = 200

PR_FOOTER = "---\nAutomated implementation by issue-runner."


class WorkCursor:
    """Hands out work indices to concurrent workers, each index once."""

    def __init__(self, total: int):
        self._total = total
        self._next = 0
        self._lock = threading.Lock()

    def claim(self) -> Optional[int]:
        """Return the next unclaimed index, or None when all are taken."""
        with self._lock:
            if self._next >= self._total:
                return None
            index = self._next
            self._next += 1
            return index


@dataclass(frozen=True)
class RunOptions:
    """Per-run switches resolved from configuration and CLI overrides.

    Attributes:
        push: Push the issue branch after committing.
        create_pr: Open a pull request for the issue branch.
        dry_run: Only log the stages that would run.
    """

    push: bool
    create_pr: bool
    dry_run: bool = False

    @classmethod
    def resolve(
        cls,
        config: IssueRunnerConfig,
        push: Optional[bool] = None,
        create_pr: Optional[bool] = None,
        dry_run: bool = False,
    ) -> "RunOptions":
        """Explicit overrides win; None falls back to the workflow settings."""
        return cls(
            push=config.workflow.auto_push if push is None else push,
            create_pr=config.workflow.auto_create_pr if create_pr is None else create_pr,
            dry_run=dry_run,
        )


def render_commit_message(template: str, issue: Issue) -> str:
    """Fill the commit message template for an issue.

    ``{{issue_body}}`` is truncated to 200 characters plus ``...``.

    Example:
        >>> render_commit_message("Fix #{{issue_number}}: {{issue_title}}", issue)
        'Fix #42: Add retry to uploader'
    """
    body = issue.body or ""
    if len(body) > MAX_BODY_IN_COMMIT:
        body = body[:MAX_BODY_IN_COMMIT] + "..."
    return (
        template.replace("{{issue_number}}", str(issue.number))
        .replace("{{issue_title}}", issue.title)
        .replace("{{issue_body}}", body)
    )


def build_pr_body(issue: Issue) -> str:
    return (
        f"Closes #{issue.number}\n\n"
        f"## Summary\n{issue.body or 'No description provided'}\n\n"
        f"{PR_FOOTER}\n"
    )


class PipelineOrchestrator:
    """Drives issues through the implementation pipeline.

    Accepts all dependencies via constructor injection.

    Attributes:
        config: Run configuration.
        tracker: Issue tracker for labels, comments and pull requests.
        git: Git wrapper for workspaces, commits and commands.
        agent: Agent loop used for implementation and review fixes.
        reviewer: Code reviewer for the review stage.
        statistics: Collector receiving one result per issue.
        event_emitter: Sink for pipeline events.
    """

    def __init__(
        self,
        config: IssueRunnerConfig,
        tracker: IssueTracker,
        git: GitManager,
        agent: AgentLoop,
        reviewer: Reviewer,
        statistics: RunStatistics,
        event_emitter: Optional[EventEmitter] = None,
    ):
        self.config = config
        self.tracker = tracker
        self.git = git
        self.agent = agent
        self.reviewer = reviewer
        self.statistics = statistics
        self.event_emitter = event_emitter or NullEventEmitter()

    @property
    def repository(self) -> str:
        return self.config.github.full_name

    async def run(self, issues: Sequence[Issue], options: RunOptions) -> List[ProcessResult]:
        """Process every issue once and return their results.

        Results are also recorded in ``statistics``. With concurrency
        enabled the result order follows completion order.
        """
        issues = list(issues)
        concurrency = min(self.config.workflow.max_concurrency, len(issues))

        logger.info(
            "Starting run",
            extra={
                "issue_count": len(issues),
                "concurrency": max(concurrency, 1),
                "dry_run": options.dry_run,
                "push": options.push,
                "create_pr": options.create_pr,
            },
        )

        if concurrency <= 1:
            return [await self.process_issue(issue, options) for issue in issues]

        results: List[ProcessResult] = []
        cursor = WorkCursor(len(issues))

        async def worker(worker_id: int) -> None:
            while True:
                index = cursor.claim()
                if index is None:
                    return
                logger.debug(
                    "Worker claimed issue",
                    extra={"worker_id": worker_id, "issue_number": issues[index].number},
                )
                results.append(await self.process_issue(issues[index], options))

        await asyncio.gather(*(worker(i) for i in range(concurrency)))
        return results

    async def process_issue(self, issue: Issue, options: RunOptions) -> ProcessResult:
        """Process one issue through every enabled stage.

        Stage faults never propagate: they are classified, reported on the
        issue and recorded as a failure.
        """
        started = time.monotonic()
        logger.info(
            "Processing issue",
            extra={"issue_number": issue.number, "title": issue.title},
        )

        if options.dry_run:
            return self._dry_run(issue, options, started)

        machine = IssueStateMachine(issue.number)
        workspace = Workspace.for_issue(
            self.config.git.worktree_dir, self.config.git.branch_prefix, issue.number
        )
        tokens_used = 0

        await self.tracker.add_label(issue.number, PROCESSING_LABEL)

        try:
            await self._transition(machine, IssueStage.WORKSPACE, workspace_path=str(workspace.path))
            await self.git.create_workspace(workspace, self.config.git.base_branch)

            await self._transition(machine, IssueStage.IMPLEMENTATION)
            tokens_used += await self._implement(issue, workspace)

            await self._transition(machine, IssueStage.VERIFICATION)
            if not await self.git.has_uncommitted_changes(workspace.path):
                raise NoChangesError()

            if self.config.workflow.auto_review and self.config.workflow.review_iterations > 0:
                await self._transition(machine, IssueStage.REVIEW)
                tokens_used += await self._review(issue, workspace)

            if self.config.workflow.run_tests:
                await self._transition(machine, IssueStage.TESTING)
                await self._run_tests(issue, workspace)

            await self._transition(machine, IssueStage.COMMIT)
            await self.git.stage_all(workspace.path)
            await self.git.commit(
                workspace.path,
                render_commit_message(self.config.git.commit_message_template, issue),
            )

            if options.push:
                await self._transition(machine, IssueStage.PUSH)
                await self.git.push(workspace.path, workspace.branch, self.config.git.remote)

            pr_url = None
            if options.create_pr:
                await self._transition(machine, IssueStage.PUBLISH)
                pr = await self.tracker.open_pull_request(
                    PullRequestRequest(
                        title=f"Fix #{issue.number}: {issue.title}",
                        body=build_pr_body(issue),
                        head=workspace.branch,
                        base=self.config.git.base_branch,
                    )
                )
                pr_url = pr.url

            await self._transition(machine, IssueStage.COMPLETED, pr_url=pr_url)
            return await self._succeed(issue, started, pr_url, tokens_used)

        except Exception as exc:
            return await self._handle_failure(issue, machine, exc, started)

        finally:
            await self._cleanup(workspace)

    async def _implement(self, issue: Issue, workspace: Workspace) -> int:
        result = await self.agent.implement(issue, str(workspace.path))
        logger.info(
            "Implementation finished",
            extra={
                "issue_number": issue.number,
                "success": result.success,
                "files_changed": result.files_changed,
                "tokens_used": result.tokens_used,
                "iterations": result.iterations,
            },
        )
        if not result.success:
            raise AgentIncompleteError(result.iterations, result.files_changed)
        return result.tokens_used

    async def _review(self, issue: Issue, workspace: Workspace) -> int:
        review_loop = ReviewLoop(
            self.reviewer,
            self.agent,
            self.git,
            self.config.workflow.review_iterations,
        )
        outcome = await review_loop.run(issue, str(workspace.path))
        logger.info(
            "Review finished",
            extra={
                "issue_number": issue.number,
                "reviews": outcome.reviews,
                "fixes_applied": outcome.fixes_applied,
            },
        )
        return outcome.tokens_used

    async def _run_tests(self, issue: Issue, workspace: Workspace) -> None:
        """Run the optional build, then the test command.

        Raises:
            BuildError: If the build command exits non-zero.
            TestError: If the test command exits non-zero.
        """
        workflow = self.config.workflow
        timeout = workflow.command_timeout_seconds

        if workflow.build_before_test:
            build = await self.git.run_command(workspace.path, workflow.build_command, timeout)
            if not build.success:
                raise BuildError(workflow.build_command, build.exit_code, build.tail())
            logger.info(
                "Build passed",
                extra={"issue_number": issue.number, "duration_seconds": build.duration_seconds},
            )

        tests = await self.git.run_command(workspace.path, workflow.test_command, timeout)
        if not tests.success:
            raise TestError(workflow.test_command, tests.exit_code, tests.tail())
        logger.info(
            "Tests passed",
            extra={"issue_number": issue.number, "duration_seconds": tests.duration_seconds},
        )

    async def _succeed(
        self,
        issue: Issue,
        started: float,
        pr_url: Optional[str],
        tokens_used: int,
    ) -> ProcessResult:
        await self.tracker.remove_label(issue.number, PROCESSING_LABEL)
        await self.tracker.add_label(issue.number, COMPLETED_LABEL)

        duration = time.monotonic() - started
        await self._safe_emit(
            EventType.COMPLETION,
            issue.number,
            {"pr_url": pr_url, "duration_seconds": duration, "tokens_used": tokens_used},
        )
        logger.info(
            "Issue completed",
            extra={
                "issue_number": issue.number,
                "pr_url": pr_url,
                "duration_seconds": round(duration, 1),
            },
        )
        return self.statistics.record_success(issue.number, duration, pr_url)

    async def _handle_failure(
        self,
        issue: Issue,
        machine: IssueStateMachine,
        exc: Exception,
        started: float,
    ) -> ProcessResult:
        """Classify a stage fault, report it on the issue and record it."""
        stage = machine.current_stage
        category = classify_error(exc)
        duration = time.monotonic() - started

        logger.error(
            "Issue failed",
            exc_info=True,
            extra={
                "issue_number": issue.number,
                "stage": stage.value,
                "category": category.value,
                "error": str(exc),
            },
        )

        if not machine.is_finished:
            await self._transition(machine, IssueStage.FAILED, error=str(exc))

        await self.tracker.remove_label(issue.number, PROCESSING_LABEL)
        await self.tracker.add_label(issue.number, label_for(category))
        try:
            await self.tracker.add_comment(
                issue.number, format_diagnostic(exc, category, stage.value)
            )
        except Exception as comment_error:
            logger.warning(
                "Failed to post diagnostic comment",
                extra={"issue_number": issue.number, "error": str(comment_error)},
            )

        await self._safe_emit(
            EventType.ERROR,
            issue.number,
            {
                "error_message": str(exc),
                "category": category.value,
                "stage": stage.value,
                "duration_seconds": duration,
            },
        )
        return self.statistics.record_failure(
            issue.number,
            category,
            duration,
            message=str(exc),
            stage=stage.value,
        )

    async def _cleanup(self, workspace: Workspace) -> None:
        try:
            await self.git.remove_workspace(workspace.path)
        except Exception as e:
            logger.warning(
                "Failed to remove workspace",
                extra={
                    "issue_number": workspace.issue_number,
                    "workspace_path": str(workspace.path),
                    "error": str(e),
                },
            )

    def _dry_run(self, issue: Issue, options: RunOptions, started: float) -> ProcessResult:
        workflow = self.config.workflow
        stages = [IssueStage.WORKSPACE, IssueStage.IMPLEMENTATION, IssueStage.VERIFICATION]
        if workflow.auto_review and workflow.review_iterations > 0:
            stages.append(IssueStage.REVIEW)
        if workflow.run_tests:
            stages.append(IssueStage.TESTING)
        stages.append(IssueStage.COMMIT)
        if options.push:
            stages.append(IssueStage.PUSH)
        if options.create_pr:
            stages.append(IssueStage.PUBLISH)

        logger.info(
            "Dry run: would process issue",
            extra={
                "issue_number": issue.number,
                "title": issue.title,
                "stages": [stage.value for stage in stages],
            },
        )
        return self.statistics.record_success(issue.number, time.monotonic() - started)

    async def _transition(
        self,
        machine: IssueStateMachine,
        to_stage: IssueStage,
        **details,
    ) -> None:
        from_stage = machine.current_stage
        machine.transition(to_stage, details)
        await self._safe_emit(
            EventType.STATE_TRANSITION,
            machine.state.issue_number,
            {"from_stage": from_stage.value, "to_stage": to_stage.value},
        )

    async def _safe_emit(self, event_type: EventType, issue_number: int, details: dict) -> None:
        """Emit an event; emitter failures are logged and never propagate."""
        try:
            await self.event_emitter.emit(
                PipelineEvent(
                    event_type=event_type,
                    issue_number=issue_number,
                    repository=self.repository,
                    details=details,
                )
            )
        except Exception as e:
            logger.warning(
                "Failed to emit event",
                extra={
                    "event_type": event_type.value,
                    "issue_number": issue_number,
                    "error": str(e),
                },
            )
