"""Run statistics and the end-of-run report.

Every issue dispatched into the pipeline records exactly one
ProcessResult. Workers may record concurrently, so appends are guarded by
a lock; order within one worker is preserved, order across workers is not.
"""

import logging
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.issue_runner.errors.taxonomy import ErrorCategory


logger = logging.getLogger(__name__)

SEPARATOR = "=" * 60


class ProcessResult(BaseModel):
    """Outcome of one issue's processing attempt.

    Attributes:
        issue_number: The processed issue.
        success: Whether every enabled stage succeeded.
        duration_seconds: Time spent on the issue.
        error_category: Classified category of the fault, on failure.
        error_message: Fault message, on failure.
        failed_stage: Stage in which the fault occurred, on failure.
        pr_url: URL of the opened pull request, if any.
    """

    model_config = ConfigDict(frozen=True)

    issue_number: int
    success: bool
    duration_seconds: float = Field(..., ge=0)
    error_category: Optional[ErrorCategory] = None
    error_message: Optional[str] = None
    failed_stage: Optional[str] = None
    pr_url: Optional[str] = None


class Report(BaseModel):
    """Summary of a run.

    Attributes:
        total: Number of issues processed.
        successful: Number of successes.
        failed: Number of failures.
        success_rate: Percentage of successes (0 when nothing ran).
        average_duration_seconds: Mean duration of successful issues.
        total_duration_seconds: Wall-clock time of the whole run.
        results: Every recorded result.
    """

    total: int
    successful: int
    failed: int
    success_rate: float
    average_duration_seconds: float
    total_duration_seconds: float
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    results: List[ProcessResult] = Field(default_factory=list)


class RunStatistics:
    """Thread-safe collector of ProcessResults for one run."""

    def __init__(self) -> None:
        self._results: List[ProcessResult] = []
        self._lock = threading.Lock()
        self._started = time.monotonic()

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)

    @property
    def results(self) -> List[ProcessResult]:
        with self._lock:
            return list(self._results)

    def record(self, result: ProcessResult) -> None:
        with self._lock:
            self._results.append(result)
        logger.info(
            "Recorded result",
            extra={
                "issue_number": result.issue_number,
                "success": result.success,
                "error_category": result.error_category.value if result.error_category else None,
            },
        )

    def record_success(
        self,
        issue_number: int,
        duration_seconds: float,
        pr_url: Optional[str] = None,
    ) -> ProcessResult:
        result = ProcessResult(
            issue_number=issue_number,
            success=True,
            duration_seconds=duration_seconds,
            pr_url=pr_url,
        )
        self.record(result)
        return result

    def record_failure(
        self,
        issue_number: int,
        category: ErrorCategory,
        duration_seconds: float,
        message: Optional[str] = None,
        stage: Optional[str] = None,
    ) -> ProcessResult:
        result = ProcessResult(
            issue_number=issue_number,
            success=False,
            duration_seconds=duration_seconds,
            error_category=category,
            error_message=message,
            failed_stage=stage,
        )
        self.record(result)
        return result

    def generate_report(self) -> Report:
        results = self.results
        successful = [r for r in results if r.success]
        total = len(results)

        report = Report(
            total=total,
            successful=len(successful),
            failed=total - len(successful),
            success_rate=(len(successful) / total * 100) if total else 0.0,
            average_duration_seconds=(
                sum(r.duration_seconds for r in successful) / len(successful)
                if successful
                else 0.0
            ),
            total_duration_seconds=time.monotonic() - self._started,
            results=results,
        )
        logger.info(
            "Report generated",
            extra={
                "total": report.total,
                "successful": report.successful,
                "failed": report.failed,
                "success_rate": round(report.success_rate, 1),
            },
        )
        return report


def format_duration(seconds: float) -> str:
    """Render a duration as ``1h 2m 3s`` / ``2m 3s`` / ``3s``.

    Example:
        >>> format_duration(3723)
        '1h 2m 3s'
    """
    total = int(seconds)
    minutes, secs = divmod(total, 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def format_report(report: Report) -> str:
    """Render the run summary for the console."""
    lines = [
        "",
        SEPARATOR,
        "Execution Summary",
        SEPARATOR,
        f"Total time: {format_duration(report.total_duration_seconds)}",
        f"Processed: {report.total} issues",
        f"Success: {report.successful} ({report.success_rate:.1f}%)",
        f"Failed: {report.failed}",
    ]
    if report.successful:
        lines.append(
            f"Average time per issue: {format_duration(report.average_duration_seconds)}"
        )

    failed = [r for r in report.results if not r.success]
    if failed:
        lines.extend(["", "Failed Issues:"])
        for r in failed:
            category = r.error_category.value if r.error_category else "unknown"
            lines.append(f"  #{r.issue_number}: {category} - {r.error_message or 'Unknown error'}")

    succeeded = [r for r in report.results if r.success]
    if succeeded:
        lines.extend(["", "Successful Issues:"])
        for r in succeeded:
            lines.append(f"  #{r.issue_number}: {r.pr_url or 'Completed'}")

    lines.extend([SEPARATOR, ""])
    return "\n".join(lines)


def save_report(report: Report, output_dir: Path) -> Path:
    """Write the report as JSON into ``output_dir`` and return the path."""
    output_dir.mkdir(parents=True, exist_ok=True)
    stamp = report.generated_at.strftime("%Y%m%dT%H%M%SZ")
    path = output_dir / f"report-{stamp}.json"
    path.write_text(report.model_dump_json(indent=2), encoding="utf-8")
    logger.info("Report saved", extra={"report_path": str(path)})
    return path
