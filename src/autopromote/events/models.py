"""Workflow event models for observability.

This module defines the data models for workflow events:
- EventType: Enum of all event types emitted by the workflow runner
- WorkflowEvent: Structured event with all required metadata

Events are emitted for monitoring, alerting, and debugging purposes. They
are the only place a plan failure is reported besides the repository state
itself.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Types of events emitted by the workflow runner.

    Attributes:
        PLAN_SKIPPED: The push did not match the trigger predicate.
        PLAN_STARTED: The push matched and the action plan began.
        ACTION_SUCCEEDED: One action of the plan completed.
        ACTION_FAILED: One action of the plan failed; the plan aborts.
        PLAN_COMPLETED: Every action of the plan succeeded.
        PLAN_FAILED: The plan stopped at a failed action.
    """

    PLAN_SKIPPED = "plan_skipped"
    PLAN_STARTED = "plan_started"
    ACTION_SUCCEEDED = "action_succeeded"
    ACTION_FAILED = "action_failed"
    PLAN_COMPLETED = "plan_completed"
    PLAN_FAILED = "plan_failed"


class WorkflowEvent(BaseModel):
    """Structured event emitted by the workflow runner.

    Attributes:
        event_type: The category of event.
        event_id: Correlation identifier in format "{owner}/{repo}@{ref}".
        repository: Full repository path in format "{owner}/{repo}".
        timestamp: When the event occurred (UTC timezone).
        details: Additional context specific to the event type.

    Details Field Conventions:
        For ACTION_SUCCEEDED events:
            - action: Action kind value
            - output: The action output

        For ACTION_FAILED and PLAN_FAILED events:
            - action: Action kind value (absent for plan-level failures)
            - error_kind: ``remote_api`` or ``unknown``
            - status_code: HTTP status for remote API errors
            - error_message: Human-readable error description

        For PLAN_COMPLETED and PLAN_FAILED events:
            - duration_seconds: Total plan time
    """

    event_type: EventType = Field(
        ...,
        description="The category of event being emitted",
    )

    event_id: str = Field(
        ...,
        min_length=1,
        description='Correlation identifier in format "{owner}/{repo}@{ref}"',
    )

    repository: str = Field(
        ...,
        min_length=1,
        description='Full repository path in format "{owner}/{repo}"',
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC timezone)",
    )

    details: Dict[str, Any] = Field(
        default_factory=dict,
        description="Additional context specific to the event type",
    )

    def to_log_dict(self) -> Dict[str, Any]:
        """Convert event to a flat dictionary suitable for structured logging.

        Returns:
            Dict[str, Any]: Flat dictionary representation of the event.

        Example:
            >>> event = WorkflowEvent(
            ...     event_type=EventType.PLAN_FAILED,
            ...     event_id="acme/widgets@refs/heads/topic",
            ...     repository="acme/widgets",
            ...     details={"error_kind": "remote_api"}
            ... )
            >>> event.to_log_dict()["event_type"]
            'plan_failed'
        """
        return {
            "event_type": self.event_type.value,
            "event_id": self.event_id,
            "repository": self.repository,
            "timestamp": self.timestamp.isoformat(),
            **self.details,
        }
