"""Run reporting: statistics, pipeline events and Prometheus metrics.

Event Emitters:
- EventEmitter: Abstract base class for event emission
- LoggingEventEmitter: Emits events as structured log entries
- MetricsEventEmitter: Updates the run's Prometheus metrics
- CompositeEventEmitter: Emits to multiple sinks simultaneously
- NullEventEmitter: Discards events

Statistics:
- RunStatistics: Thread-safe ProcessResult collector
- Report / format_report / save_report: End-of-run summary
"""

from src.issue_runner.reporting.events import (
    CompositeEventEmitter,
    EventEmitter,
    EventType,
    LoggingEventEmitter,
    NullEventEmitter,
    PipelineEvent,
)
from src.issue_runner.reporting.metrics import MetricsEventEmitter, PipelineMetrics
from src.issue_runner.reporting.statistics import (
    ProcessResult,
    Report,
    RunStatistics,
    format_duration,
    format_report,
    save_report,
)

__all__ = [
    # Events
    "CompositeEventEmitter",
    "EventEmitter",
    "EventType",
    "LoggingEventEmitter",
    "NullEventEmitter",
    "PipelineEvent",
    # Metrics
    "MetricsEventEmitter",
    "PipelineMetrics",
    # Statistics
    "ProcessResult",
    "Report",
    "RunStatistics",
    "format_duration",
    "format_report",
    "save_report",
]
