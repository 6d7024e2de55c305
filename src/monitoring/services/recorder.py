from __future__ import annotations

import logging
import math
from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List

from src.monitoring.errors import DataError, ValidationError
from src.monitoring.schemas.metrics import AssessmentStats, BusinessMetric, GradingQueueStats

logger = logging.getLogger(__name__)


@dataclass
class IntervalWindow:
    """Interval-scoped raw data; detached from the recorder at every archive tick."""

    samples: List[float] = field(default_factory=list)
    requests: Dict[str, int] = field(default_factory=dict)
    errors: Dict[str, int] = field(default_factory=dict)
    business: Dict[str, int] = field(default_factory=dict)

    @property
    def total_requests(self) -> int:
        return int(sum(self.requests.values()))

    @property
    def total_errors(self) -> int:
        return int(sum(self.errors.values()))


def _validate_duration(duration_ms: float) -> float:
    try:
        value = float(duration_ms)
    except (TypeError, ValueError):
        raise DataError("duration must be a number", meta={"duration": repr(duration_ms)}) from None
    if math.isnan(value) or math.isinf(value):
        raise DataError("duration must be finite", meta={"duration": value})
    if value < 0:
        raise DataError("duration must not be negative", meta={"duration": value})
    return value


class SampleRecorder:
    """
    Raw ingestion state: recent response times plus per-operation counters.

    Not thread-safe on its own; MonitoringService serializes access.
    """

    def __init__(self, buffer_size: int = 1000) -> None:
        self._buffer_size = max(1, int(buffer_size))
        self._samples: Deque[float] = deque(maxlen=self._buffer_size)
        self._requests: Counter = Counter()
        self._errors: Counter = Counter()
        self._business: Counter = Counter()

        self.assessment_stats = AssessmentStats()
        self.grading_queue = GradingQueueStats()

    @property
    def buffer_size(self) -> int:
        return self._buffer_size

    def record_response_time(self, operation: str, duration_ms: float) -> float:
        """Append a duration (oldest dropped past capacity) and count the request."""
        value = _validate_duration(duration_ms)
        self._samples.append(value)
        self._requests[str(operation)] += 1
        return value

    def record_error(self, operation: str) -> None:
        self._errors[str(operation)] += 1

    def record_business_metric(self, metric: BusinessMetric, value: float) -> None:
        stats = self.assessment_stats
        if metric is BusinessMetric.assessment_created:
            stats.total_assessments += 1
            self._business[metric.value] += 1
        elif metric is BusinessMetric.submission_completed:
            stats.completed_submissions += 1
            self._business[metric.value] += 1
        elif metric is BusinessMetric.average_score:
            stats.average_score = _non_negative(metric, value)
        elif metric is BusinessMetric.completion_rate:
            stats.completion_rate = _non_negative(metric, value)
        elif metric is BusinessMetric.active_assessments:
            stats.active_assessments = int(_non_negative(metric, value))

    def set_grading_queue(self, stats: GradingQueueStats) -> None:
        self.grading_queue = stats.model_copy(deep=True)

    def window(self) -> IntervalWindow:
        """Copy of the live interval data; the recorder is unchanged."""
        return IntervalWindow(
            samples=list(self._samples),
            requests=dict(self._requests),
            errors=dict(self._errors),
            business=dict(self._business),
        )

    def detach(self) -> IntervalWindow:
        """Swap in empty buffer/counters and hand back the previous interval's data."""
        detached = IntervalWindow(
            samples=list(self._samples),
            requests=dict(self._requests),
            errors=dict(self._errors),
            business=dict(self._business),
        )
        self._samples = deque(maxlen=self._buffer_size)
        self._requests = Counter()
        self._errors = Counter()
        self._business = Counter()
        return detached


def _non_negative(metric: BusinessMetric, value: float) -> float:
    try:
        v = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{metric.value} requires a numeric value") from None
    if math.isnan(v) or math.isinf(v) or v < 0:
        raise ValidationError(f"{metric.value} requires a finite non-negative value", meta={"value": v})
    return v
