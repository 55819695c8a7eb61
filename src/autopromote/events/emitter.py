"""Event emitter implementations for workflow observability.

This module defines the abstract EventEmitter interface and its sinks:

- LoggingEventEmitter: Emits events as structured log entries
- CompositeEventEmitter: Emits to multiple sinks simultaneously
- NullEventEmitter: Discards events

The Prometheus sink lives in metrics.py.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from src.autopromote.events.models import EventType, WorkflowEvent


logger = logging.getLogger(__name__)


class EventEmitter(ABC):
    """Abstract base class for workflow event emitters.

    Implementations are called from the runner's async context and must
    not let failures escape into plan execution.
    """

    @abstractmethod
    async def emit(self, event: WorkflowEvent) -> None:
        """Emit a workflow event.

        Args:
            event: The workflow event to emit.
        """

    async def close(self) -> None:
        """Close the emitter and release resources."""


class LoggingEventEmitter(EventEmitter):
    """Event emitter that logs events using structured logging.

    Events are logged at different levels based on event type:

    - PLAN_SKIPPED: DEBUG level
    - PLAN_STARTED, ACTION_SUCCEEDED, PLAN_COMPLETED: INFO level
    - ACTION_FAILED, PLAN_FAILED: ERROR level
    """

    def __init__(self, logger_name: Optional[str] = None):
        """Initialize the logging event emitter.

        Args:
            logger_name: Optional logger name. If not provided, uses
                         the module logger.
        """
        self._logger = (
            logging.getLogger(logger_name)
            if logger_name
            else logger
        )
        self._log_level_map = {
            EventType.PLAN_SKIPPED: logging.DEBUG,
            EventType.PLAN_STARTED: logging.INFO,
            EventType.ACTION_SUCCEEDED: logging.INFO,
            EventType.PLAN_COMPLETED: logging.INFO,
            EventType.ACTION_FAILED: logging.ERROR,
            EventType.PLAN_FAILED: logging.ERROR,
        }

    async def emit(self, event: WorkflowEvent) -> None:
        """Emit event as a structured log entry.

        Args:
            event: The workflow event to log.
        """
        log_level = self._log_level_map.get(event.event_type, logging.INFO)

        self._logger.log(
            log_level,
            "Workflow event: %s for %s",
            event.event_type.value,
            event.event_id,
            extra=event.to_log_dict(),
        )


class CompositeEventEmitter(EventEmitter):
    """Event emitter that delegates to multiple child emitters.

    Failures in one emitter do not affect others: each child is called
    independently and errors are logged but not propagated.

    Attributes:
        emitters: List of child emitters to delegate to.
    """

    def __init__(self, emitters: Optional[List[EventEmitter]] = None):
        self._emitters: List[EventEmitter] = emitters or []

    def add_emitter(self, emitter: EventEmitter) -> None:
        """Add a child emitter to the composite."""
        self._emitters.append(emitter)

    @property
    def emitters(self) -> List[EventEmitter]:
        """Get the list of child emitters (read-only copy)."""
        return list(self._emitters)

    async def emit(self, event: WorkflowEvent) -> None:
        """Emit event to all child emitters.

        Args:
            event: The workflow event to emit.
        """
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
                        "event_id": event.event_id,
                    },
                )

    async def close(self) -> None:
        """Close all child emitters, logging failures."""
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

    async def emit(self, event: WorkflowEvent) -> None:
        pass
