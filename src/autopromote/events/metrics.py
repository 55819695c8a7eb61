"""Prometheus metrics for workflow observability.

Metrics Defined:
- autopromote_plans_total: Counter of plans by repository and outcome
- autopromote_action_failures_total: Counter of failed actions by action
  and error kind
- autopromote_plan_duration_seconds: Histogram of plan execution time

The MetricsEventEmitter updates these metrics from workflow events. They
are exposed at the ``/metrics`` endpoint in Prometheus text format.
"""

import logging
from typing import Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

from src.autopromote.events.emitter import EventEmitter
from src.autopromote.events.models import EventType, WorkflowEvent


logger = logging.getLogger(__name__)


# Plans are three sequential API calls, so seconds rather than minutes
DEFAULT_DURATION_BUCKETS = (0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0)


class WorkflowMetrics:
    """Container for all workflow Prometheus metrics.

    Supports custom registries so tests do not collide on the default one.

    Attributes:
        registry: The Prometheus registry for these metrics.
        plans_total: Counter for plans by outcome.
        action_failures_total: Counter for failed actions.
        plan_duration_seconds: Histogram for plan duration.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or REGISTRY

        self.plans_total = Counter(
            "autopromote_plans_total",
            "Total number of push events handled, by outcome",
            labelnames=["repository", "outcome"],
            registry=self.registry,
        )

        self.action_failures_total = Counter(
            "autopromote_action_failures_total",
            "Total number of failed workflow actions",
            labelnames=["action", "error_kind"],
            registry=self.registry,
        )

        self.plan_duration_seconds = Histogram(
            "autopromote_plan_duration_seconds",
            "Time spent executing workflow plans in seconds",
            labelnames=["repository"],
            buckets=DEFAULT_DURATION_BUCKETS,
            registry=self.registry,
        )

    def record_plan(self, repository: str, outcome: str) -> None:
        self.plans_total.labels(repository=repository, outcome=outcome).inc()

    def record_action_failure(self, action: str, error_kind: str) -> None:
        self.action_failures_total.labels(action=action, error_kind=error_kind).inc()

    def record_plan_duration(self, repository: str, duration_seconds: float) -> None:
        self.plan_duration_seconds.labels(repository=repository).observe(duration_seconds)


_default_metrics: Optional[WorkflowMetrics] = None


def get_metrics(registry: Optional[CollectorRegistry] = None) -> WorkflowMetrics:
    """Get or create the workflow metrics instance.

    Args:
        registry: Optional Prometheus registry. If None, returns the
                  global metrics instance for the default registry.

    Returns:
        WorkflowMetrics: The metrics instance.
    """
    global _default_metrics

    if registry is not None:
        return WorkflowMetrics(registry=registry)

    if _default_metrics is None:
        _default_metrics = WorkflowMetrics()

    return _default_metrics


def generate_metrics_output(registry: Optional[CollectorRegistry] = None) -> bytes:
    """Generate Prometheus metrics output for the /metrics endpoint."""
    return generate_latest(registry or REGISTRY)


class MetricsEventEmitter(EventEmitter):
    """Event emitter that updates Prometheus metrics.

    - PLAN_SKIPPED: counts a ``not_triggered`` plan
    - ACTION_FAILED: counts the failure by action and error kind
    - PLAN_COMPLETED / PLAN_FAILED: counts the outcome, records duration
    """

    def __init__(
        self,
        metrics: Optional[WorkflowMetrics] = None,
        registry: Optional[CollectorRegistry] = None,
    ):
        if metrics is not None:
            self._metrics = metrics
        else:
            self._metrics = get_metrics(registry)

    @property
    def metrics(self) -> WorkflowMetrics:
        return self._metrics

    async def emit(self, event: WorkflowEvent) -> None:
        """Update metrics based on the workflow event.

        Args:
            event: The workflow event to process.
        """
        try:
            if event.event_type == EventType.PLAN_SKIPPED:
                self._metrics.record_plan(event.repository, "not_triggered")
            elif event.event_type == EventType.ACTION_FAILED:
                self._metrics.record_action_failure(
                    action=event.details.get("action", "unknown"),
                    error_kind=event.details.get("error_kind", "unknown"),
                )
            elif event.event_type in (EventType.PLAN_COMPLETED, EventType.PLAN_FAILED):
                outcome = (
                    "succeeded"
                    if event.event_type == EventType.PLAN_COMPLETED
                    else "failed"
                )
                self._metrics.record_plan(event.repository, outcome)

                duration = event.details.get("duration_seconds")
                if duration is not None:
                    self._metrics.record_plan_duration(
                        event.repository, float(duration)
                    )
        except Exception as e:
            logger.error(
                "Failed to update metrics for event %s: %s",
                event.event_type.value,
                str(e),
                extra={
                    "event_type": event.event_type.value,
                    "event_id": event.event_id,
                },
            )
