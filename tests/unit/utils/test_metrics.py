"""Tests for operation timing and the logging metrics sink."""

from __future__ import annotations

import logging

import pytest

from spend_monitor.utils.metrics import LoggingMetricsSink, timed_operation
from tests.fixtures.provider_fakes import RecordingMetricsSink


@pytest.mark.unit
class TestTimedOperation:
    def test_records_success(self, metrics: RecordingMetricsSink) -> None:
        with timed_operation(metrics, "RegisterDevice") as timer:
            timer.dimensions["result"] = "created"

        [observation] = metrics.observations
        assert observation.name == "RegisterDevice"
        assert observation.success
        assert observation.duration_ms >= 0
        assert observation.dimensions == {"result": "created"}

    def test_mark_failed(self, metrics: RecordingMetricsSink) -> None:
        with timed_operation(metrics, "CleanupEndpoints") as timer:
            timer.mark_failed()

        assert [o.success for o in metrics.named("CleanupEndpoints")] == [False]

    def test_exception_is_recorded_and_propagates(self, metrics: RecordingMetricsSink) -> None:
        with pytest.raises(RuntimeError, match="boom"):
            with timed_operation(metrics, "DispatchAlert"):
                raise RuntimeError("boom")

        assert [o.success for o in metrics.named("DispatchAlert")] == [False]

    def test_without_sink(self) -> None:
        with timed_operation(None, "HealthCheck") as timer:
            pass

        assert timer.success
        assert timer.elapsed_ms >= 0


@pytest.mark.unit
class TestLoggingMetricsSink:
    def test_emits_debug_record(self, caplog: pytest.LogCaptureFixture) -> None:
        sink = LoggingMetricsSink(namespace="Test")

        with caplog.at_level(logging.DEBUG, logger="spend_monitor.utils.metrics"):
            sink.record("HealthCheck", 12.34567, success=True, dimensions={"status": "healthy"})

        [record] = caplog.records
        assert record.getMessage() == "Test/HealthCheck 12.3ms success=True"
        assert getattr(record, "metric") == "Test.HealthCheck"  # noqa: B009
        assert getattr(record, "duration_ms") == 12.346  # noqa: B009
        assert getattr(record, "dimensions") == {"status": "healthy"}  # noqa: B009
