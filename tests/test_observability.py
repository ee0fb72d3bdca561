"""Tests for structured logging and metrics."""

import logging

import pytest

from media_pipeline.core.observability import (
    LogContext,
    LogLevel,
    MetricsCollector,
    ObservabilityConfig,
    PerformanceMetrics,
    StructuredLogger,
    create_logger,
    create_metrics_collector,
    log_operation_end,
    log_operation_start,
)
from media_pipeline.testing.fakes import FakeLogger


class TestLogContext:
    """Tests for LogContext."""

    def test_with_operation_keeps_correlation_id(self):
        context = LogContext(component="allocator")

        derived = context.with_operation("allocate")

        assert derived.correlation_id == context.correlation_id
        assert derived.operation == "allocate"
        assert context.operation == ""

    def test_with_metadata_does_not_mutate(self):
        context = LogContext().with_metadata(a=1)

        derived = context.with_metadata(b=2)

        assert context.metadata == {"a": 1}
        assert derived.metadata == {"a": 1, "b": 2}


class TestStructuredLogger:
    """Tests for StructuredLogger message formatting."""

    def test_formats_context(self, caplog):
        logger = StructuredLogger("observability-test")
        context = LogContext(correlation_id="cid", operation="derive").with_metadata(
            filename="a.jpg"
        )

        logger._logger.addHandler(caplog.handler)
        try:
            logger.info("done", context, size=3)
        finally:
            logger._logger.removeHandler(caplog.handler)

        assert "[derive] [cid] done (filename=a.jpg, size=3)" in caplog.text

    def test_kwargs_without_context(self, caplog):
        logger = StructuredLogger("observability-test-kwargs")

        logger._logger.addHandler(caplog.handler)
        try:
            logger.warning("slow", seconds=2)
        finally:
            logger._logger.removeHandler(caplog.handler)

        assert "slow (seconds=2)" in caplog.text

    def test_name_is_nested(self):
        assert StructuredLogger("upload_pipeline").name == "media-pipeline.upload_pipeline"


class TestMetricsCollector:
    """Tests for MetricsCollector."""

    def test_summary(self):
        collector = MetricsCollector()
        collector.record_metric(PerformanceMetrics("process_file", 0.1, True))
        collector.record_metric(PerformanceMetrics("process_file", 0.3, False, "bad"))
        collector.record_metric(PerformanceMetrics("derive", 0.05, True))

        summary = collector.get_summary("process_file")

        assert summary["total_operations"] == 2
        assert summary["successful_operations"] == 1
        assert summary["failed_operations"] == 1
        assert summary["success_rate"] == 0.5
        assert summary["avg_duration"] == pytest.approx(0.2)
        assert summary["max_duration"] == pytest.approx(0.3)

    def test_empty_summary(self):
        assert MetricsCollector().get_summary() == {}

    def test_clear(self):
        collector = MetricsCollector()
        collector.record_metric(PerformanceMetrics("x", 1.0, True))

        collector.clear_metrics()

        assert collector.get_metrics() == []

    def test_duration_ms(self):
        assert PerformanceMetrics("x", 0.25, True).duration_ms == 250


class TestOperationLogging:
    """Tests for start/end helpers."""

    def test_start_and_end(self):
        logger = FakeLogger()

        context = log_operation_start("process_batch", logger, file_count=3)
        log_operation_end("process_batch", logger, context, success=False, error_message="boom")

        start, end = logger.get_logs()
        assert start["message"] == "Starting process_batch"
        assert start["file_count"] == 3
        assert end["level"] == "ERROR"
        assert end["message"] == "Failed process_batch: boom"
        assert end["correlation_id"] == start["correlation_id"]


def test_factories_respect_config():
    config = ObservabilityConfig(log_level=LogLevel.DEBUG, enable_metrics=False)

    logger = create_logger("factory-test", config)

    assert logging.getLogger(logger.name).level == logging.DEBUG
    assert create_metrics_collector(config) is None
    assert isinstance(create_metrics_collector(ObservabilityConfig()), MetricsCollector)
