"""Prometheus metrics for a pipeline run.

Metrics Defined:
- issue_runner_issues_processed_total: Counter of issues processed by result
- issue_runner_issues_failed_total: Counter of failures by stage and category
- issue_runner_processing_duration_seconds: Histogram of processing time
- issue_runner_issues_by_stage: Gauge of issues currently in each stage
- issue_runner_llm_tokens_total: Counter of tokens spent on completed issues

Every run owns its own CollectorRegistry. At the end of the run the
registry is written in Prometheus text format so a node exporter textfile
collector (or a human) can pick it up.
"""

import logging
from pathlib import Path
from typing import Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    write_to_textfile,
)

from src.issue_runner.reporting.events import EventEmitter, EventType, PipelineEvent
from src.issue_runner.state.models import IssueStage


logger = logging.getLogger(__name__)


# Covers range from 10 seconds to 2 hours
DEFAULT_DURATION_BUCKETS = (
    10.0,
    30.0,
    60.0,
    120.0,
    300.0,
    600.0,
    1200.0,
    1800.0,
    3600.0,
    7200.0,
)


class PipelineMetrics:
    """Container for all pipeline Prometheus metrics.

    Attributes:
        registry: The Prometheus registry for these metrics.

    Example:
        >>> metrics = PipelineMetrics(CollectorRegistry())
        >>> metrics.record_issue_processed("org/repo", success=True)
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()

        self.issues_processed_total = Counter(
            "issue_runner_issues_processed_total",
            "Total number of issues processed",
            labelnames=["repository", "result"],
            registry=self.registry,
        )

        self.issues_failed_total = Counter(
            "issue_runner_issues_failed_total",
            "Total number of issues that failed, by stage and error category",
            labelnames=["repository", "stage", "category"],
            registry=self.registry,
        )

        self.processing_duration_seconds = Histogram(
            "issue_runner_processing_duration_seconds",
            "Time spent processing issues in seconds",
            labelnames=["repository", "result"],
            buckets=DEFAULT_DURATION_BUCKETS,
            registry=self.registry,
        )

        self.issues_by_stage = Gauge(
            "issue_runner_issues_by_stage",
            "Current number of issues in each stage",
            labelnames=["stage"],
            registry=self.registry,
        )

        self.llm_tokens_total = Counter(
            "issue_runner_llm_tokens_total",
            "Tokens spent by the agent and reviewer on completed issues",
            labelnames=["repository"],
            registry=self.registry,
        )

        for stage in IssueStage:
            self.issues_by_stage.labels(stage=stage.value).set(0)

    def record_issue_processed(self, repository: str, success: bool) -> None:
        result = "success" if success else "failure"
        self.issues_processed_total.labels(repository=repository, result=result).inc()

    def record_issue_failed(self, repository: str, stage: str, category: str) -> None:
        self.issues_failed_total.labels(
            repository=repository,
            stage=stage,
            category=category,
        ).inc()

    def record_processing_duration(
        self,
        repository: str,
        duration_seconds: float,
        success: bool,
    ) -> None:
        result = "success" if success else "failure"
        self.processing_duration_seconds.labels(
            repository=repository,
            result=result,
        ).observe(duration_seconds)

    def update_stage_count(self, stage: str, delta: int) -> None:
        """Move the gauge for a stage by ``delta``, never below zero."""
        gauge = self.issues_by_stage.labels(stage=stage)
        if delta < 0 and gauge._value.get() <= 0:
            return
        gauge.inc(delta)

    def generate(self) -> bytes:
        """Metrics in Prometheus text format."""
        return generate_latest(self.registry)

    def write(self, path: Path) -> None:
        """Write the metrics to a Prometheus textfile."""
        path.parent.mkdir(parents=True, exist_ok=True)
        write_to_textfile(str(path), self.registry)
        logger.info("Metrics written", extra={"metrics_path": str(path)})


class MetricsEventEmitter(EventEmitter):
    """Event emitter that updates Prometheus metrics.

    - STATE_TRANSITION: Moves the issues_by_stage gauge
    - ERROR: Records failure, processed count and duration
    - COMPLETION: Records success, duration and tokens
    """

    def __init__(self, metrics: PipelineMetrics):
        self._metrics = metrics

    @property
    def metrics(self) -> PipelineMetrics:
        return self._metrics

    async def emit(self, event: PipelineEvent) -> None:
        try:
            if event.event_type == EventType.STATE_TRANSITION:
                self._handle_state_transition(event)
            elif event.event_type == EventType.ERROR:
                self._handle_error(event)
            elif event.event_type == EventType.COMPLETION:
                self._handle_completion(event)
        except Exception as e:
            logger.error(
                "Failed to update metrics for event %s: %s",
                event.event_type.value,
                str(e),
                extra={
                    "event_type": event.event_type.value,
                    "issue_number": event.issue_number,
                },
            )

    def _handle_state_transition(self, event: PipelineEvent) -> None:
        from_stage = event.details.get("from_stage")
        to_stage = event.details.get("to_stage")
        if from_stage:
            self._metrics.update_stage_count(from_stage, -1)
        if to_stage:
            self._metrics.update_stage_count(to_stage, +1)

    def _handle_error(self, event: PipelineEvent) -> None:
        self._metrics.record_issue_failed(
            repository=event.repository,
            stage=event.details.get("stage", "unknown"),
            category=event.details.get("category", "unknown"),
        )
        self._metrics.record_issue_processed(event.repository, success=False)
        duration = event.details.get("duration_seconds")
        if duration is not None:
            self._metrics.record_processing_duration(
                event.repository, float(duration), success=False
            )

    def _handle_completion(self, event: PipelineEvent) -> None:
        self._metrics.record_issue_processed(event.repository, success=True)
        duration = event.details.get("duration_seconds")
        if duration is not None:
            self._metrics.record_processing_duration(
                event.repository, float(duration), success=True
            )
        tokens = event.details.get("tokens_used")
        if tokens:
            self._metrics.llm_tokens_total.labels(repository=event.repository).inc(tokens)
