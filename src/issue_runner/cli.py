"""Command line entry point.

Usage:
    issue-runner [-c PATH] [-i IDS]... [--dry-run] [--push/--no-push]
                 [--pr/--no-pr] [-v]

Exit status is 0 when the run completed, even if some issues failed, and
1 when the run could not start (configuration or issue selection errors).
"""

import asyncio
import logging
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import click

from src.issue_runner import __version__
from src.issue_runner.agent.llm import LLMClient
from src.issue_runner.agent.loop import AgentLoop
from src.issue_runner.config import (
    DEFAULT_CONFIG_PATH,
    IssueRunnerConfig,
    load_config,
    log_configuration,
)
from src.issue_runner.errors.exceptions import ConfigError, IssueRunnerError
from src.issue_runner.errors.taxonomy import (
    COMPLETED_LABEL,
    FAILED_LABEL,
    PROCESSING_LABEL,
)
from src.issue_runner.git.manager import GitError, GitManager
from src.issue_runner.github.client import GitHubAPIError, GitHubClient
from src.issue_runner.github.tracker import GitHubIssueTracker
from src.issue_runner.logging_setup import configure_logging
from src.issue_runner.orchestrator import PipelineOrchestrator, RunOptions
from src.issue_runner.reporting.events import CompositeEventEmitter, LoggingEventEmitter
from src.issue_runner.reporting.metrics import MetricsEventEmitter, PipelineMetrics
from src.issue_runner.reporting.statistics import (
    Report,
    RunStatistics,
    format_report,
    save_report,
)
from src.issue_runner.review.reviewer import CodeReviewer
from src.issue_runner.selection import select_issues


logger = logging.getLogger(__name__)

METRICS_FILE_NAME = "metrics.prom"

CONTROL_LABEL_COLORS = {
    PROCESSING_LABEL: ("fbca04", "issue-runner is working on this issue"),
    COMPLETED_LABEL: ("0e8a16", "issue-runner finished this issue"),
    FAILED_LABEL: ("d73a4a", "issue-runner failed on this issue"),
}


def parse_issue_numbers(values: Sequence[str]) -> List[int]:
    """Parse ``-i`` values; each may be a comma separated list.

    Example:
        >>> parse_issue_numbers(["42", "7,8"])
        [42, 7, 8]
    """
    numbers = []
    for value in values:
        for part in value.split(","):
            part = part.strip()
            if not part:
                continue
            if not part.isdigit() or int(part) <= 0:
                raise click.BadParameter(
                    f"'{part}' is not a positive issue number", param_hint="--issue"
                )
            numbers.append(int(part))
    return numbers


async def run_pipeline(
    config: IssueRunnerConfig,
    issue_numbers: Sequence[int],
    options: RunOptions,
) -> Tuple[Report, PipelineMetrics]:
    """Select issues, process them and return the run report.

    Raises:
        IssueSelectionError: If the issues to process cannot be determined.
        GitError: If the repository checkout cannot be read.
    """
    statistics = RunStatistics()
    metrics = PipelineMetrics()
    emitter = CompositeEventEmitter(
        [LoggingEventEmitter(), MetricsEventEmitter(metrics)]
    )

    llm = LLMClient(
        api_key=config.llm.api_key,
        model=config.llm.model,
        base_url=config.llm.base_url,
        temperature=config.llm.temperature,
        max_tokens=config.llm.max_tokens,
        timeout=config.llm.timeout_seconds,
        max_retries=config.llm.max_retries,
    )
    git = GitManager(config.git.repo_path, remote=config.git.remote)

    if not options.dry_run:
        branch = await git.current_branch(config.git.repo_path)
        logger.info(
            "Repository checkout",
            extra={"repo_path": str(config.git.repo_path), "branch": branch or "(detached)"},
        )

    async with GitHubClient(
        owner=config.github.owner,
        repo=config.github.repo,
        token=config.github.token,
        base_url=config.github.base_url,
    ) as client:
        tracker = GitHubIssueTracker(client)
        issues = await select_issues(tracker, config, issue_numbers)

        if not issues:
            logger.info("No issues to process")
        else:
            if not options.dry_run:
                for label, (color, description) in CONTROL_LABEL_COLORS.items():
                    await tracker.ensure_label(label, color=color, description=description)

            orchestrator = PipelineOrchestrator(
                config=config,
                tracker=tracker,
                git=git,
                agent=AgentLoop(llm, max_iterations=config.llm.max_iterations),
                reviewer=CodeReviewer(llm),
                statistics=statistics,
                event_emitter=emitter,
            )
            await orchestrator.run(issues, options)

    await emitter.close()
    return statistics.generate_report(), metrics


@click.command("issue-runner")
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=DEFAULT_CONFIG_PATH,
    show_default=True,
    help="Path to the YAML configuration file",
)
@click.option(
    "-i",
    "--issue",
    "issues",
    multiple=True,
    help="Issue number(s) to process; repeatable, accepts comma separated lists",
)
@click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help="Log what would be done without touching labels, git or the model",
)
@click.option(
    "--push/--no-push",
    default=None,
    help="Push issue branches (default: workflow.auto_push)",
)
@click.option(
    "--pr/--no-pr",
    "create_pr",
    default=None,
    help="Open pull requests (default: workflow.auto_create_pr)",
)
@click.option("-v", "--verbose", is_flag=True, default=False, help="Enable debug logging")
@click.version_option(__version__, prog_name="issue-runner")
def main(
    config_path: Path,
    issues: Tuple[str, ...],
    dry_run: bool,
    push: Optional[bool],
    create_pr: Optional[bool],
    verbose: bool,
):
    """Implement GitHub issues with an LLM coding agent.

    Issues are taken from --issue, or selected by the labels configured in
    github.labels. Each issue is implemented in its own git worktree,
    reviewed, tested, committed and optionally pushed and opened as a
    pull request.
    """
    issue_numbers = parse_issue_numbers(issues)

    try:
        config = load_config(config_path)
    except ConfigError as e:
        configure_logging(verbose=verbose)
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    configure_logging(config.logging.level, config.logging.output_dir, verbose=verbose)
    log_configuration(config)

    options = RunOptions.resolve(config, push=push, create_pr=create_pr, dry_run=dry_run)

    try:
        report, metrics = asyncio.run(run_pipeline(config, issue_numbers, options))
    except (IssueRunnerError, GitHubAPIError, GitError) as e:
        logger.error("Run aborted", extra={"error": str(e)})
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    click.echo(format_report(report))

    output_dir = config.logging.output_dir
    try:
        save_report(report, output_dir)
        metrics.write(output_dir / METRICS_FILE_NAME)
    except OSError as e:
        logger.warning("Failed to save run artifacts", extra={"error": str(e)})


if __name__ == "__main__":
    main()
