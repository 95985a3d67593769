"""
test_metrics.py
---------------
Metrics aggregator and the CloudWatch sink.

Run:
    pytest tests/test_metrics.py -v --tb=short
"""
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from fhir_loader.integrations.cloudwatch_client import CloudWatchMetricsSink
from fhir_loader.services.metrics import CountMetric, DurationMetric, MetricsAggregator
from tests.conftest import FakeMetricsSink


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


# ── Aggregator ────────────────────────────────────────────────────────────────

def test_stage_records_duration_in_ms():
    clock = FakeClock()
    metrics = MetricsAggregator(clock=clock)
    with metrics.stage("download"):
        clock.now += 1.25
    assert metrics.metrics["download"].duration == 1250


def test_failed_stage_records_nothing():
    metrics = MetricsAggregator(clock=FakeClock())
    with pytest.raises(RuntimeError):
        with metrics.stage("download"):
            raise RuntimeError("boom")
    assert "download" not in metrics.metrics


def test_record_count():
    metrics = MetricsAggregator()
    metrics.record_count("errorCount", 2)
    assert isinstance(metrics.metrics["errorCount"], CountMetric)
    assert metrics.metrics["errorCount"].count == 2


def test_record_job_age():
    clock = FakeClock(datetime(2024, 5, 1, 10, 0, 5, tzinfo=timezone.utc).timestamp())
    metrics = MetricsAggregator(clock=clock)
    metrics.record_job_age(datetime(2024, 5, 1, 10, 0, 0, tzinfo=timezone.utc))
    assert metrics.metrics["job"].duration == 5000


def test_record_job_age_without_start_is_skipped():
    metrics = MetricsAggregator()
    metrics.record_job_age(None)
    assert "job" not in metrics.metrics


def test_flush_reports_all_metrics_once():
    sink = FakeMetricsSink()
    metrics = MetricsAggregator()
    metrics.record_duration("download", 10)
    metrics.record_count("errorCount", 1)
    metrics.flush(sink)
    assert len(sink.reports) == 1
    assert set(sink.reports[0]) == {"download", "errorCount"}


def test_flush_sink_failure_is_logged_only():
    sink = FakeMetricsSink(error=RuntimeError("cloudwatch down"))
    log = MagicMock()
    metrics = MetricsAggregator()
    metrics.record_duration("download", 10)
    metrics.flush(sink, log)
    log.warning.assert_called_once()


# ── CloudWatch sink ───────────────────────────────────────────────────────────

def test_cloudwatch_metric_data():
    client = MagicMock()
    sink = CloudWatchMetricsSink(client, namespace="Test/FHIR", service_name="sqs-to-fhir")
    sink.report_metrics({
        "download": DurationMetric(duration=120),
        "errorCount": CountMetric(count=2),
    })
    kwargs = client.put_metric_data.call_args.kwargs
    assert kwargs["Namespace"] == "Test/FHIR"
    by_name = {d["MetricName"]: d for d in kwargs["MetricData"]}
    assert by_name["download"]["Value"] == 120
    assert by_name["download"]["Unit"] == "Milliseconds"
    assert by_name["errorCount"]["Value"] == 2
    assert by_name["errorCount"]["Unit"] == "Count"
    assert by_name["errorCount"]["Dimensions"] == [{"Name": "Service", "Value": "sqs-to-fhir"}]


def test_cloudwatch_skips_empty_metrics():
    client = MagicMock()
    CloudWatchMetricsSink(client, "Test/FHIR", "sqs-to-fhir").report_metrics({})
    client.put_metric_data.assert_not_called()


def test_cloudwatch_requires_namespace():
    with pytest.raises(ValueError):
        CloudWatchMetricsSink(MagicMock(), "", "sqs-to-fhir")
