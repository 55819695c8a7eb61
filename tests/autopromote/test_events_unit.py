"""Unit tests for workflow event emitters and Prometheus metrics."""

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest
from prometheus_client import CollectorRegistry

from src.autopromote.events import (
    CompositeEventEmitter,
    EventEmitter,
    EventType,
    LoggingEventEmitter,
    MetricsEventEmitter,
    NullEventEmitter,
    WorkflowEvent,
    generate_metrics_output,
    get_metrics,
)


def run_async(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def make_event(event_type: EventType, **details) -> WorkflowEvent:
    return WorkflowEvent(
        event_type=event_type,
        event_id="acme/widgets@refs/heads/mass-bump-versions",
        repository="acme/widgets",
        details=details,
    )


@pytest.fixture
def registry():
    return CollectorRegistry()


class TestWorkflowEvent:
    def test_to_log_dict_flattens_details(self):
        event = make_event(EventType.ACTION_FAILED, action="merge_pull_request", status_code=405)

        log_dict = event.to_log_dict()

        assert log_dict["event_type"] == "action_failed"
        assert log_dict["repository"] == "acme/widgets"
        assert log_dict["action"] == "merge_pull_request"
        assert log_dict["status_code"] == 405
        assert log_dict["timestamp"].endswith("+00:00")


class TestLoggingEventEmitter:
    @pytest.mark.parametrize(
        "event_type,level",
        [
            (EventType.PLAN_SKIPPED, logging.DEBUG),
            (EventType.PLAN_STARTED, logging.INFO),
            (EventType.PLAN_COMPLETED, logging.INFO),
            (EventType.ACTION_FAILED, logging.ERROR),
            (EventType.PLAN_FAILED, logging.ERROR),
        ],
    )
    def test_levels(self, caplog, event_type, level):
        emitter = LoggingEventEmitter(logger_name="autopromote.test.events")

        with caplog.at_level(logging.DEBUG, logger="autopromote.test.events"):
            run_async(emitter.emit(make_event(event_type)))

        record = caplog.records[-1]
        assert record.levelno == level
        assert record.event_type == event_type.value
        assert event_type.value in record.getMessage()


class TestCompositeEventEmitter:
    def test_failing_child_does_not_block_others(self):
        broken = MagicMock(spec=EventEmitter)
        broken.emit = AsyncMock(side_effect=RuntimeError("down"))
        broken.close = AsyncMock(side_effect=RuntimeError("down"))
        healthy = MagicMock(spec=EventEmitter)
        healthy.emit = AsyncMock()
        healthy.close = AsyncMock()

        composite = CompositeEventEmitter([broken])
        composite.add_emitter(healthy)
        event = make_event(EventType.PLAN_STARTED)

        run_async(composite.emit(event))
        run_async(composite.close())

        healthy.emit.assert_awaited_once_with(event)
        healthy.close.assert_awaited_once()
        assert len(composite.emitters) == 2

    def test_null_emitter(self):
        run_async(NullEventEmitter().emit(make_event(EventType.PLAN_STARTED)))


class TestMetricsEventEmitter:
    def test_outcomes_and_failures(self, registry):
        emitter = MetricsEventEmitter(registry=registry)

        async def scenario():
            await emitter.emit(make_event(EventType.PLAN_SKIPPED))
            await emitter.emit(make_event(EventType.PLAN_COMPLETED, duration_seconds=1.5))
            await emitter.emit(
                make_event(
                    EventType.ACTION_FAILED,
                    action="merge_pull_request",
                    error_kind="remote_api",
                )
            )
            await emitter.emit(make_event(EventType.PLAN_FAILED, duration_seconds=0.5))

        run_async(scenario())

        def plans(outcome):
            return registry.get_sample_value(
                "autopromote_plans_total",
                {"repository": "acme/widgets", "outcome": outcome},
            )

        assert plans("not_triggered") == 1.0
        assert plans("succeeded") == 1.0
        assert plans("failed") == 1.0
        assert registry.get_sample_value(
            "autopromote_action_failures_total",
            {"action": "merge_pull_request", "error_kind": "remote_api"},
        ) == 1.0
        assert registry.get_sample_value(
            "autopromote_plan_duration_seconds_count",
            {"repository": "acme/widgets"},
        ) == 2.0
        assert registry.get_sample_value(
            "autopromote_plan_duration_seconds_sum",
            {"repository": "acme/widgets"},
        ) == 2.0

    def test_started_and_succeeded_actions_are_not_counted(self, registry):
        emitter = MetricsEventEmitter(registry=registry)

        run_async(emitter.emit(make_event(EventType.PLAN_STARTED)))
        run_async(emitter.emit(make_event(EventType.ACTION_SUCCEEDED, action="delete_ref")))

        assert registry.get_sample_value(
            "autopromote_plans_total",
            {"repository": "acme/widgets", "outcome": "succeeded"},
        ) is None

    def test_metrics_output(self, registry):
        metrics = get_metrics(registry)
        metrics.record_plan("acme/widgets", "succeeded")

        output = generate_metrics_output(registry).decode("utf-8")

        assert 'autopromote_plans_total{repository="acme/widgets",outcome="succeeded"} 1.0' in output
