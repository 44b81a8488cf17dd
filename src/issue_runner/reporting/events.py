"""Pipeline events and event emitters.

This module defines the events the orchestrator emits while processing
issues, and the sinks they can be routed to:
- EventType / PipelineEvent: Structured event with issue and context
- EventEmitter: Abstract base class for event emission
- LoggingEventEmitter: Emits events as structured log entries
- CompositeEventEmitter: Emits to multiple sinks simultaneously
- NullEventEmitter: Discards events (for tests and dry runs)

Emitters are passed to the orchestrator explicitly; nothing is global.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Types of events emitted by the pipeline.

    Attributes:
        STATE_TRANSITION: Issue moved from one stage to another.
        ERROR: A stage fault ended an issue's processing.
        COMPLETION: Issue completed every enabled stage.
    """

    STATE_TRANSITION = "state_transition"
    ERROR = "error"
    COMPLETION = "completion"


class PipelineEvent(BaseModel):
    """Structured event emitted by the pipeline.

    Details Field Conventions:
        For STATE_TRANSITION events:
            - from_stage: Previous stage
            - to_stage: New stage

        For ERROR events:
            - error_message: Human-readable error description
            - category: Classified error category
            - stage: Stage where the fault occurred
            - duration_seconds: Time spent on the issue

        For COMPLETION events:
            - pr_url: URL of the pull request, if one was opened
            - duration_seconds: Total processing time
            - tokens_used: Tokens spent by the agent and reviewer

    Attributes:
        event_type: The category of event.
        issue_number: The issue the event is about.
        repository: Repository in format "{owner}/{repo}".
        timestamp: When the event occurred (UTC timezone).
        details: Additional context specific to the event type.
    """

    event_type: EventType

    issue_number: int = Field(..., gt=0)

    repository: str = Field(..., min_length=1)

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )

    details: Dict[str, Any] = Field(default_factory=dict)

    def to_log_dict(self) -> Dict[str, Any]:
        """Flat dictionary of the event for structured logging."""
        return {
            "event_type": self.event_type.value,
            "issue_number": self.issue_number,
            "repository": self.repository,
            "event_timestamp": self.timestamp.isoformat(),
            **self.details,
        }


class EventEmitter(ABC):
    """Abstract base class for pipeline event emitters.

    Implementations should be fault-tolerant: emit() failures are logged
    by the caller and never affect an issue's outcome.
    """

    @abstractmethod
    async def emit(self, event: PipelineEvent) -> None:
        """Emit a pipeline event."""

    async def close(self) -> None:
        """Close the emitter and release resources."""


class LoggingEventEmitter(EventEmitter):
    """Event emitter that logs events using structured logging.

    - STATE_TRANSITION: DEBUG level
    - COMPLETION: INFO level
    - ERROR: ERROR level
    """

    def __init__(self, logger_name: Optional[str] = None):
        self._logger = logging.getLogger(logger_name) if logger_name else logger
        self._log_level_map = {
            EventType.STATE_TRANSITION: logging.DEBUG,
            EventType.COMPLETION: logging.INFO,
            EventType.ERROR: logging.ERROR,
        }

    async def emit(self, event: PipelineEvent) -> None:
        log_level = self._log_level_map.get(event.event_type, logging.INFO)
        self._logger.log(
            log_level,
            "Pipeline event: %s for #%d",
            event.event_type.value,
            event.issue_number,
            extra=event.to_log_dict(),
        )


class CompositeEventEmitter(EventEmitter):
    """Event emitter that delegates to multiple child emitters.

    Failures in one emitter do not affect others.
    """

    def __init__(self, emitters: Optional[List[EventEmitter]] = None):
        self._emitters: List[EventEmitter] = emitters or []

    def add_emitter(self, emitter: EventEmitter) -> None:
        self._emitters.append(emitter)

    @property
    def emitters(self) -> List[EventEmitter]:
        return list(self._emitters)

    async def emit(self, event: PipelineEvent) -> None:
        for emitter in self._emitters:
            try:
                await emitter.emit(event)
            except Exception as e:
                logger.error(
                    "Failed to emit event to %s: %s",
                    type(emitter).__name__,
                    str(e),
                    extra={
                        "emitter_type": type(emitter).__name__,
                        "event_type": event.event_type.value,
                        "issue_number": event.issue_number,
                    },
                )

    async def close(self) -> None:
        for emitter in self._emitters:
            try:
                await emitter.close()
            except Exception as e:
                logger.error(
                    "Failed to close emitter %s: %s",
                    type(emitter).__name__,
                    str(e),
                )


class NullEventEmitter(EventEmitter):
    """Event emitter that discards all events."""

    async def emit(self, event: PipelineEvent) -> None:
        pass
