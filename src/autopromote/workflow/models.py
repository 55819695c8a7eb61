"""Workflow runner models.

This module defines the data models for executing an action plan:
- ActionKind: The remote operations a plan can contain
- ErrorKind: Classification of an action failure
- ActionResult: Per-action outcome
- PlanResult: Outcome of a whole plan
- WorkflowConfig: The fixed inputs of the promotion workflow

A plan's outcome is FAILED as soon as any action fails. Actions that
already completed are never rolled back.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ActionKind(str, Enum):
    """Remote operations executed by the promotion plan, in plan order."""

    CREATE_PULL_REQUEST = "create_pull_request"
    MERGE_PULL_REQUEST = "merge_pull_request"
    DELETE_REF = "delete_ref"


class ActionStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ErrorKind(str, Enum):
    """Classification of an action failure.

    Attributes:
        REMOTE_API: GitHub answered with an error status and message.
        UNKNOWN: Anything else (network fault, unexpected response shape).
    """

    REMOTE_API = "remote_api"
    UNKNOWN = "unknown"


class PlanOutcome(str, Enum):
    """Overall outcome of handling one push event.

    Attributes:
        NOT_TRIGGERED: The event did not match the trigger predicate.
        SUCCEEDED: Every action succeeded.
        FAILED: The plan stopped at a failed action.
    """

    NOT_TRIGGERED = "not_triggered"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ActionResult(BaseModel):
    """Outcome of a single action.

    Attributes:
        action: Which action ran.
        status: Succeeded or failed.
        output: Values produced by a successful action (e.g. pull_number).
        error_kind: Failure classification, set when status is FAILED.
        message: Failure description, set when status is FAILED.
        status_code: HTTP status for REMOTE_API failures.
    """

    action: ActionKind
    status: ActionStatus
    output: Dict[str, Any] = Field(default_factory=dict)
    error_kind: Optional[ErrorKind] = None
    message: Optional[str] = None
    status_code: Optional[int] = None

    @classmethod
    def succeeded(cls, action: ActionKind, output: Dict[str, Any]) -> "ActionResult":
        return cls(action=action, status=ActionStatus.SUCCEEDED, output=output)

    @classmethod
    def failed(
        cls,
        action: ActionKind,
        error_kind: ErrorKind,
        message: str,
        status_code: Optional[int] = None,
    ) -> "ActionResult":
        return cls(
            action=action,
            status=ActionStatus.FAILED,
            error_kind=error_kind,
            message=message,
            status_code=status_code,
        )

    @property
    def is_success(self) -> bool:
        return self.status == ActionStatus.SUCCEEDED


class PlanResult(BaseModel):
    """Outcome of handling one push event.

    ``results`` holds one entry per action that ran, in execution order.
    Actions after a failure do not run and have no entry. Failures that
    happen before the first action (e.g. acquiring an installation token)
    are recorded on the plan itself through ``error_kind``, ``message``
    and ``status_code``.
    """

    event_id: str
    outcome: PlanOutcome
    results: List[ActionResult] = Field(default_factory=list)
    error_kind: Optional[ErrorKind] = None
    message: Optional[str] = None
    status_code: Optional[int] = None
    duration_seconds: float = 0.0

    @classmethod
    def not_triggered(cls, event_id: str) -> "PlanResult":
        return cls(event_id=event_id, outcome=PlanOutcome.NOT_TRIGGERED)

    @property
    def succeeded(self) -> bool:
        """True for completed plans and for events that did not trigger one."""
        return self.outcome != PlanOutcome.FAILED

    @property
    def failed_action(self) -> Optional[ActionResult]:
        """The action that aborted the plan, if any."""
        for result in self.results:
            if not result.is_success:
                return result
        return None

    def output_of(self, action: ActionKind) -> Optional[Dict[str, Any]]:
        """Output of a successful action, or None if it did not succeed."""
        for result in self.results:
            if result.action == action and result.is_success:
                return result.output
        return None


class WorkflowConfig(BaseModel):
    """Fixed inputs of the promotion workflow.

    Attributes:
        target_branch: Branch whose pushes trigger the workflow.
        base_branch: Integration branch the pull request targets.
        pull_request_title: Title of the pull request and squash commit.
        merge_method: GitHub merge method.
    """

    target_branch: str = Field("mass-bump-versions", min_length=1)
    base_branch: str = Field("master", min_length=1)
    pull_request_title: str = Field("[skip ci] chore: Mass bump versions", min_length=1)
    merge_method: str = "squash"

    @property
    def target_ref(self) -> str:
        """Ref a push must update to trigger the workflow."""
        return f"refs/heads/{self.target_branch}"

    @property
    def cleanup_ref(self) -> str:
        """Ref deleted after the merge, in git refs API form."""
        return f"heads/{self.target_branch}"

    @classmethod
    def from_settings(cls, settings: Any) -> "WorkflowConfig":
        return cls(
            target_branch=settings.target_branch,
            base_branch=settings.base_branch,
            pull_request_title=settings.pull_request_title,
            merge_method=settings.merge_method,
        )
