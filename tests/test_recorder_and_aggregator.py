from __future__ import annotations

import math
import random

import pytest

from src.monitoring.errors import DataError, ValidationError
from src.monitoring.schemas.metrics import AssessmentStats, BusinessMetric, GradingQueueStats
from src.monitoring.services.aggregator import compute_snapshot, percentile
from src.monitoring.services.recorder import SampleRecorder


def test_percentile_uses_ceiling_index_rule():
    values = [100, 150, 200, 250, 300, 1500]
    # ceil(0.50*6)-1 = 2, ceil(0.95*6)-1 = 5, ceil(0.99*6)-1 = 5
    assert percentile(values, 50) == 200
    assert percentile(values, 95) == 1500
    assert percentile(values, 99) == 1500
    assert percentile([], 95) == 0.0
    assert percentile([42], 0) == 42


def test_percentiles_are_ordered_for_any_sample_set():
    rng = random.Random(7)
    for _ in range(200):
        n = rng.randint(1, 300)
        values = [rng.uniform(0, 5000) for _ in range(n)]
        p50, p95, p99 = percentile(values, 50), percentile(values, 95), percentile(values, 99)
        assert p50 <= p95 <= p99


def test_buffer_keeps_only_most_recent_samples():
    rec = SampleRecorder(buffer_size=1000)
    for i in range(1500):
        rec.record_response_time("bulk_operation", float(i))

    samples = rec.window().samples
    assert len(samples) == 1000
    assert min(samples) == 500
    assert max(samples) == 1499
    # Request counters are not bounded by the buffer.
    assert rec.window().total_requests == 1500


@pytest.mark.parametrize("bad", [-1, -0.001, float("nan"), float("inf"), "slow"])
def test_invalid_durations_are_rejected(bad):
    rec = SampleRecorder()
    with pytest.raises(DataError):
        rec.record_response_time("op", bad)
    window = rec.window()
    assert window.samples == []
    assert window.total_requests == 0


def test_detach_swaps_in_empty_interval():
    rec = SampleRecorder()
    rec.record_response_time("grade", 10)
    rec.record_error("grade")
    rec.record_business_metric(BusinessMetric.assessment_created, 1)

    detached = rec.detach()
    assert detached.samples == [10.0]
    assert detached.requests == {"grade": 1}
    assert detached.errors == {"grade": 1}
    assert detached.business == {"assessment_created": 1}

    after = rec.window()
    assert after.samples == [] and after.requests == {} and after.errors == {} and after.business == {}
    # Lifetime totals survive the reset.
    assert rec.assessment_stats.total_assessments == 1


def test_business_gauges_reject_invalid_values():
    rec = SampleRecorder()
    with pytest.raises(ValidationError):
        rec.record_business_metric(BusinessMetric.average_score, -5)
    with pytest.raises(ValidationError):
        rec.record_business_metric(BusinessMetric.completion_rate, float("nan"))
    assert rec.assessment_stats.average_score == 0


def test_grade_scenario_p95(service):
    for d in [100, 150, 200, 250, 300, 1500]:
        service.record_response_time("grade", d)

    metrics = service.get_current_metrics()
    assert metrics.response_time.p95 == 1500
    assert metrics.response_time.p50 == 200
    assert metrics.response_time.p99 == 1500
    assert metrics.response_time.average == pytest.approx(2500 / 6)


def test_error_rate_and_throughput(service):
    for _ in range(120):
        service.record_response_time("mixed_operation", 200)
    for _ in range(6):
        service.record_error("mixed_operation", RuntimeError("Test error"))

    metrics = service.get_current_metrics()
    assert metrics.throughput.requests_per_second == pytest.approx(2.0)
    assert metrics.system_health.error_rate == pytest.approx(5.0)


def test_empty_window_yields_zeros(service):
    metrics = service.get_current_metrics()
    assert metrics.response_time.p50 == 0
    assert metrics.response_time.average == 0
    assert metrics.throughput.requests_per_second == 0
    assert metrics.system_health.error_rate == 0
    assert metrics.system_health.availability == 100


def test_process_stats_feed_system_health(service, process_stats):
    process_stats.memory = 42.5
    process_stats.cpu = 250.0  # clamped to 100
    metrics = service.get_current_metrics()
    assert metrics.system_health.memory_usage == 42.5
    assert metrics.system_health.cpu_usage == 100.0


def test_compute_snapshot_survives_failing_stats_provider(clock):
    class Broken:
        def memory_usage_percent(self):
            raise OSError("no /proc")

        def cpu_usage_percent(self):
            return math.nan

    rec = SampleRecorder()
    rec.record_response_time("op", 5)
    snap = compute_snapshot(rec.window(), AssessmentStats(), GradingQueueStats(), Broken(), clock())
    assert snap.system_health.memory_usage == 0.0
    assert snap.system_health.cpu_usage == 0.0
    assert snap.response_time.p50 == 5


def test_read_returns_independent_copy(service):
    service.record_response_time("op", 100)
    first = service.get_current_metrics()
    first.response_time.p95 = 99999
    first.assessment_stats.total_assessments = 77
    second = service.get_current_metrics()
    assert second.response_time.p95 == 100
    assert second.assessment_stats.total_assessments == 0


def test_business_metrics_update_stats_and_emit(service, sink):
    for _ in range(3):
        service.record_business_metric("assessment_created")
    service.record_business_metric(BusinessMetric.submission_completed)
    service.record_business_metric("average_score", 81.5)
    service.record_business_metric("completion_rate", 64)
    service.record_business_metric("active_assessments", 12)

    metrics = service.get_current_metrics()
    stats = metrics.assessment_stats
    assert stats.total_assessments == 3
    assert stats.completed_submissions == 1
    assert stats.average_score == 81.5
    assert stats.completion_rate == 64
    assert stats.active_assessments == 12
    assert metrics.throughput.assessments_per_minute == 3
    assert metrics.throughput.submissions_per_minute == 1

    events = sink.named("business_metric")
    assert len(events) == 7
    assert events[-1] == {"metric": "active_assessments", "value": 12}


def test_unknown_business_metric_is_rejected(service, sink):
    with pytest.raises(ValidationError):
        service.record_business_metric("lessons_viewed", 1)
    assert sink.named("business_metric") == []


def test_slo_breach_event_for_slow_response(service, sink):
    service.record_response_time("fast_operation", 120)
    service.record_response_time("slow_operation", 600)

    breaches = sink.named("slo_breach")
    assert breaches == [{"operation": "slow_operation", "duration": 600.0, "slo": 500.0}]


def test_record_error_emits_event_and_never_raises(service, sink):
    err = ValueError("Test error message")
    service.record_error("error_operation", err)

    events = sink.named("error")
    assert len(events) == 1
    assert events[0]["operation"] == "error_operation"
    assert events[0]["error"] is err

    class ExplodingSink:
        def emit(self, event_name, payload):
            raise RuntimeError("sink down")

    service.events = ExplodingSink()
    service.record_error("error_operation", err)
    service.record_response_time("error_operation", 10)
    # 2 errors over 1 request
    assert service.get_current_metrics().system_health.error_rate == pytest.approx(200.0)
