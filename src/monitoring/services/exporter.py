"""Dashboard payload and Prometheus text exposition (format 0.0.4) for a MetricSnapshot."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Iterator, List, Sequence

from prometheus_client import CollectorRegistry, generate_latest
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily, Metric

from src.monitoring.schemas.metrics import DashboardTrends, MetricSnapshot, TrendPoint

# generate_latest() writes the 0.0.4 text format regardless of the installed client version.
PROMETHEUS_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"


def _trend(
    history: Sequence[MetricSnapshot],
    pick: Callable[[MetricSnapshot], float],
    interval: timedelta,
    now: datetime,
) -> List[TrendPoint]:
    n = len(history)
    return [TrendPoint(timestamp=now - (n - i) * interval, value=float(pick(m))) for i, m in enumerate(history)]


# PUBLIC_INTERFACE
def build_trends(history: Sequence[MetricSnapshot], interval_ms: int, now: datetime) -> DashboardTrends:
    """
    Trend series over archived snapshots (oldest first).

    Entry i of n is stamped now - (n - i) * interval, so the newest entry sits
    one interval before `now`.
    """
    interval = timedelta(milliseconds=int(interval_ms))
    return DashboardTrends(
        response_time=_trend(history, lambda m: m.response_time.p95, interval, now),
        throughput=_trend(history, lambda m: m.throughput.requests_per_second, interval, now),
        error_rate=_trend(history, lambda m: m.system_health.error_rate, interval, now),
    )



SnapshotSource = Callable[[], MetricSnapshot]


class SnapshotCollector:
    """
    Custom collector exposing a MetricSnapshot as the fixed assessment metric set.

    Durations are exported in seconds. Lifetime totals are exported as gauges
    because the client library appends `_total` to counter sample names.
    """

    def __init__(self, source: SnapshotSource, service_name: str) -> None:
        self._source = source
        self._service_name = service_name

    def collect(self) -> Iterator[Metric]:
        snapshot = self._source()
        rt = snapshot.response_time
        tp = snapshot.throughput
        stats = snapshot.assessment_stats
        health = snapshot.system_health
        queue = snapshot.grading_queue

        requests = CounterMetricFamily(
            "http_requests", "Total number of HTTP requests in the current interval", labels=["service"]
        )
        requests.add_metric([self._service_name], tp.requests_per_second * 60)
        yield requests

        duration = Metric("http_request_duration_seconds", "HTTP request duration in seconds", "summary")
        for quantile, value in (("0.5", rt.p50), ("0.95", rt.p95), ("0.99", rt.p99)):
            duration.add_sample(
                "http_request_duration_seconds",
                {"quantile": quantile, "service": self._service_name},
                value / 1000.0,
            )
        yield duration

        gauges = [
            ("assessment_response_time_p50", "50th percentile response time in seconds", rt.p50 / 1000.0),
            ("assessment_response_time_p95", "95th percentile response time in seconds", rt.p95 / 1000.0),
            ("assessment_response_time_p99", "99th percentile response time in seconds", rt.p99 / 1000.0),
            ("assessment_response_time_average", "Average response time in seconds", rt.average / 1000.0),
            ("assessment_requests_per_second", "Current requests per second", tp.requests_per_second),
            ("assessment_total_assessments", "Total number of assessments created", stats.total_assessments),
            ("assessment_completed_submissions", "Total completed submissions", stats.completed_submissions),
            ("assessment_average_score", "Current average score", stats.average_score),
            ("assessment_completion_rate", "Current completion rate percentage", stats.completion_rate),
            ("assessment_memory_usage_percent", "Memory usage percentage", health.memory_usage),
            ("assessment_error_rate_percent", "Error rate percentage", health.error_rate),
            ("assessment_grading_queue_waiting", "Jobs waiting in grading queue", queue.waiting),
            ("assessment_grading_queue_active", "Active jobs in grading queue", queue.active),
            ("assessment_grading_queue_completed", "Completed jobs in grading queue", queue.completed),
            ("assessment_grading_queue_failed", "Failed jobs in grading queue", queue.failed),
            (
                "assessment_grading_avg_processing_time_seconds",
                "Average grading processing time in seconds",
                queue.avg_processing_time / 1000.0,
            ),
            (
                "assessment_metrics_timestamp_seconds",
                "Timestamp of metrics collection",
                snapshot.timestamp.timestamp(),
            ),
        ]
        for name, help_text, value in gauges:
            yield GaugeMetricFamily(name, help_text, value=float(value))


# PUBLIC_INTERFACE
def build_registry(source: SnapshotSource, service_name: str) -> CollectorRegistry:
    """A dedicated registry holding only the snapshot collector (no process/platform collectors)."""
    registry = CollectorRegistry(auto_describe=False)
    registry.register(SnapshotCollector(source, service_name))
    return registry


# PUBLIC_INTERFACE
def exposition(registry: CollectorRegistry) -> str:
    return generate_latest(registry).decode("utf-8")


# PUBLIC_INTERFACE
def render_prometheus(snapshot: MetricSnapshot, service_name: str) -> str:
    """Render a single snapshot through a throwaway registry."""
    return exposition(build_registry(lambda: snapshot, service_name))
