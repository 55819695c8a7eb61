"""Workflow event emission and metrics.

Event Emitters:
- EventEmitter: Abstract base class for event emission
- LoggingEventEmitter: Emits events as structured log entries
- CompositeEventEmitter: Emits to multiple sinks simultaneously
- MetricsEventEmitter: Updates Prometheus metrics
- NullEventEmitter: Discards events (for testing)

Metrics:
- WorkflowMetrics: Container for all Prometheus metrics
- get_metrics: Get or create the metrics instance
- generate_metrics_output: Generate Prometheus format output for /metrics
"""

from src.autopromote.events.emitter import (
    CompositeEventEmitter,
    EventEmitter,
    LoggingEventEmitter,
    NullEventEmitter,
)
from src.autopromote.events.metrics import (
    MetricsEventEmitter,
    WorkflowMetrics,
    generate_metrics_output,
    get_metrics,
)
from src.autopromote.events.models import EventType, WorkflowEvent

__all__ = [
    "EventType",
    "WorkflowEvent",
    "EventEmitter",
    "LoggingEventEmitter",
    "CompositeEventEmitter",
    "MetricsEventEmitter",
    "NullEventEmitter",
    "WorkflowMetrics",
    "get_metrics",
    "generate_metrics_output",
]
