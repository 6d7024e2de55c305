from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Sequence

from src.monitoring.schemas.metrics import (
    AssessmentStats,
    BusinessMetric,
    GradingQueueStats,
    MetricSnapshot,
    ResponseTimeStats,
    SystemHealthStats,
    ThroughputStats,
)
from src.monitoring.services.collaborators import ProcessStatsProvider
from src.monitoring.services.recorder import IntervalWindow

logger = logging.getLogger(__name__)

# Counters cover one archive interval; rates assume it is 60 seconds long.
INTERVAL_SECONDS = 60.0


# PUBLIC_INTERFACE
def percentile(values: Sequence[float], p: float) -> float:
    """
    Nearest-rank percentile: sort ascending, index = ceil(p/100 * n) - 1 clamped to [0, n-1].

    Returns 0.0 for an empty sequence.
    """
    if not values:
        return 0.0
    ordered = sorted(values)
    n = len(ordered)
    index = int(math.ceil((float(p) / 100.0) * n)) - 1
    index = max(0, min(n - 1, index))
    return float(ordered[index])


def _response_time_stats(samples: Sequence[float]) -> ResponseTimeStats:
    if not samples:
        return ResponseTimeStats()
    return ResponseTimeStats(
        p50=percentile(samples, 50),
        p95=percentile(samples, 95),
        p99=percentile(samples, 99),
        average=float(sum(samples) / len(samples)),
    )


def _clamp_pct(v: float) -> float:
    if math.isnan(v):
        return 0.0
    return max(0.0, min(100.0, float(v)))


def _read_process_stats(provider: ProcessStatsProvider) -> tuple[float, float]:
    try:
        memory = _clamp_pct(provider.memory_usage_percent())
    except Exception:
        logger.exception("Process stats provider failed reading memory usage")
        memory = 0.0
    try:
        cpu = _clamp_pct(provider.cpu_usage_percent())
    except Exception:
        logger.exception("Process stats provider failed reading CPU usage")
        cpu = 0.0
    return memory, cpu


# PUBLIC_INTERFACE
def compute_snapshot(
    window: IntervalWindow,
    assessment_stats: AssessmentStats,
    grading_queue: GradingQueueStats,
    process_stats: ProcessStatsProvider,
    now: datetime,
) -> MetricSnapshot:
    """Derive a MetricSnapshot from one interval's raw data. Pure apart from reading process stats."""
    total_requests = window.total_requests
    total_errors = window.total_errors
    error_rate = (total_errors / total_requests) * 100.0 if total_requests > 0 else 0.0

    memory, cpu = _read_process_stats(process_stats)

    return MetricSnapshot(
        timestamp=now,
        response_time=_response_time_stats(window.samples),
        throughput=ThroughputStats(
            requests_per_second=total_requests / INTERVAL_SECONDS,
            assessments_per_minute=float(window.business.get(BusinessMetric.assessment_created.value, 0)),
            submissions_per_minute=float(window.business.get(BusinessMetric.submission_completed.value, 0)),
        ),
        assessment_stats=assessment_stats.model_copy(deep=True),
        system_health=SystemHealthStats(
            memory_usage=memory,
            cpu_usage=cpu,
            error_rate=error_rate,
            availability=100.0,
        ),
        grading_queue=grading_queue.model_copy(deep=True),
    )
