"""Workflow runner for push-triggered promotion.

The runner decides whether a push event should trigger the promotion
plan and, if so, executes the plan's actions strictly in order against
the repository client for the event's installation.

Every action failure is caught here, classified as a remote API error
(GitHubAPIError: status and message available) or an unknown error, logged
and reported through the event emitter. handle() never raises: one bad
delivery must not take down a process that serves many.
"""

import logging
import time
from typing import Any, Dict, List, Optional, Protocol, Tuple, runtime_checkable

from src.autopromote.events.emitter import EventEmitter
from src.autopromote.events.models import EventType, WorkflowEvent
from src.autopromote.github.client import GitHubAPIError
from src.autopromote.webhook.models import PushEvent
from src.autopromote.workflow.models import (
    ActionResult,
    ErrorKind,
    PlanOutcome,
    PlanResult,
    WorkflowConfig,
)
from src.autopromote.workflow.plan import (
    ActionOutputs,
    ActionPlan,
    RepositoryClient,
    build_promotion_plan,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class ClientProvider(Protocol):
    """Supplies the authenticated repository client for an event.

    GitHubApp implements it by resolving the event's installation.
    """

    async def client_for(self, event: PushEvent) -> RepositoryClient:
        ...


def classify_error(exc: BaseException) -> Tuple[ErrorKind, str, Optional[int]]:
    """Classify an action failure.

    Args:
        exc: The exception raised by the action.

    Returns:
        Tuple of (error kind, message, HTTP status code or None).
    """
    if isinstance(exc, GitHubAPIError):
        return ErrorKind.REMOTE_API, exc.api_message, exc.status_code
    return ErrorKind.UNKNOWN, str(exc) or type(exc).__name__, None


class WorkflowRunner:
    """Runs the promotion plan for matching push events.

    Attributes:
        client_provider: Supplies the repository client for each event.
        config: Target/base branches, title and merge method.
        event_emitter: Receives workflow events for observability.
        plan: The ordered actions to execute.
    """

    def __init__(
        self,
        client_provider: ClientProvider,
        config: WorkflowConfig,
        event_emitter: EventEmitter,
        plan: Optional[ActionPlan] = None,
    ):
        self.client_provider = client_provider
        self.config = config
        self.event_emitter = event_emitter
        self.plan = plan or build_promotion_plan()

    def matches(self, event: PushEvent) -> bool:
        """Trigger predicate: a non-deleting push to the target branch."""
        return event.ref == self.config.target_ref and not event.deleted

    async def handle(self, event: PushEvent) -> PlanResult:
        """Handle one push event.

        Args:
            event: Parsed push event.

        Returns:
            PlanResult describing what ran. Never raises.
        """
        if not self.matches(event):
            logger.debug(
                "Push does not trigger promotion",
                extra={"event_id": event.event_id, "deleted": event.deleted},
            )
            await self._emit(EventType.PLAN_SKIPPED, event)
            return PlanResult.not_triggered(event.event_id)

        logger.info(
            "Push to %s, starting promotion plan",
            self.config.target_branch,
            extra={
                "event_id": event.event_id,
                "delivery_id": event.delivery_id,
                "actions": [kind.value for kind in self.plan.kinds],
            },
        )
        started = time.monotonic()
        await self._emit(EventType.PLAN_STARTED, event)

        try:
            client = await self.client_provider.client_for(event)
        except Exception as exc:
            error_kind, message, status_code = classify_error(exc)
            self._log_failure("authenticate", error_kind, message, status_code, event)
            result = PlanResult(
                event_id=event.event_id,
                outcome=PlanOutcome.FAILED,
                error_kind=error_kind,
                message=message,
                status_code=status_code,
                duration_seconds=time.monotonic() - started,
            )
            await self._emit(
                EventType.PLAN_FAILED,
                event,
                error_kind=error_kind.value,
                error_message=message,
                status_code=status_code,
                duration_seconds=result.duration_seconds,
            )
            return result

        results = await self._execute(client, event)
        failed = any(not r.is_success for r in results)
        result = PlanResult(
            event_id=event.event_id,
            outcome=PlanOutcome.FAILED if failed else PlanOutcome.SUCCEEDED,
            results=results,
            duration_seconds=time.monotonic() - started,
        )

        if failed:
            failure = result.failed_action
            await self._emit(
                EventType.PLAN_FAILED,
                event,
                action=failure.action.value,
                error_kind=failure.error_kind.value,
                error_message=failure.message,
                status_code=failure.status_code,
                duration_seconds=result.duration_seconds,
            )
        else:
            logger.info(
                "Promotion plan completed",
                extra={
                    "event_id": event.event_id,
                    "duration_seconds": result.duration_seconds,
                },
            )
            await self._emit(
                EventType.PLAN_COMPLETED,
                event,
                duration_seconds=result.duration_seconds,
            )

        return result

    async def _execute(self, client: RepositoryClient, event: PushEvent) -> List[ActionResult]:
        """Run the plan's actions in order, stopping at the first failure."""
        outputs: ActionOutputs = {}
        results: List[ActionResult] = []

        for action in self.plan:
            missing = [kind for kind in action.requires if kind not in outputs]
            if missing:
                break

            try:
                output = await action.run(client, event, self.config, outputs)
            except Exception as exc:
                error_kind, message, status_code = classify_error(exc)
                self._log_failure(action.kind.value, error_kind, message, status_code, event)
                results.append(
                    ActionResult.failed(action.kind, error_kind, message, status_code)
                )
                await self._emit(
                    EventType.ACTION_FAILED,
                    event,
                    action=action.kind.value,
                    error_kind=error_kind.value,
                    error_message=message,
                    status_code=status_code,
                )
                break

            outputs[action.kind] = output
            results.append(ActionResult.succeeded(action.kind, output))
            await self._emit(
                EventType.ACTION_SUCCEEDED,
                event,
                action=action.kind.value,
                output=output,
            )

        return results

    def _log_failure(
        self,
        step: str,
        error_kind: ErrorKind,
        message: str,
        status_code: Optional[int],
        event: PushEvent,
    ) -> None:
        """Log an action failure; unknown errors include the traceback.

        Must be called from inside the ``except`` block handling the error.
        """
        extra = {
            "event_id": event.event_id,
            "step": step,
            "error_kind": error_kind.value,
            "status_code": status_code,
        }
        if error_kind == ErrorKind.REMOTE_API:
            logger.error("Error! Status: %s. Message: %s", status_code, message, extra=extra)
        else:
            logger.exception("Error during %s: %s", step, message, extra=extra)

    async def _emit(self, event_type: EventType, event: PushEvent, **details: Any) -> None:
        """Emit a workflow event; emitter failures are logged and dropped."""
        payload: Dict[str, Any] = {"delivery_id": event.delivery_id, **details}
        try:
            await self.event_emitter.emit(
                WorkflowEvent(
                    event_type=event_type,
                    event_id=event.event_id,
                    repository=event.full_repository,
                    details=payload,
                )
            )
        except Exception as exc:
            logger.warning(
                "Failed to emit %s event: %s",
                event_type.value,
                exc,
                extra={"event_id": event.event_id},
            )

