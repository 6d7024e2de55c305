from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from src.monitoring.schemas.metrics import BusinessMetric, OperationKind
from src.monitoring.services.monitoring_service import MonitoringService

logger = logging.getLogger(__name__)

Timer = Callable[[], float]

_NON_WORD = re.compile(r"[^a-zA-Z0-9]")


@dataclass
class RequestToken:
    """Handle returned by begin(); pass it to end() or fail() exactly once."""

    request_id: str
    operation: str
    started: float
    method: str = ""
    path: str = ""
    finished: bool = field(default=False)


# PUBLIC_INTERFACE
def operation_name(method: str, path: str) -> str:
    """Map an HTTP method + path to an operation name used for counters."""
    m = (method or "").lower()
    p = path or "/"
    if "/assessments" in p and m == "post":
        return OperationKind.create_assessment.value
    if "/assessments" in p and m == "get":
        return OperationKind.get_assessment.value
    if "/submissions" in p and m == "post":
        return OperationKind.create_submission.value
    if "/responses" in p and m == "post":
        return OperationKind.submit_response.value
    if "/grade" in p and m == "post":
        return OperationKind.grade_submission.value
    return f"{m}_{_NON_WORD.sub('_', p)}"


# PUBLIC_INTERFACE
def business_metric_for(method: str, path: str, status_code: int) -> Optional[BusinessMetric]:
    """Business event implied by a successful request, if any."""
    if not (200 <= int(status_code) < 300):
        return None
    m = (method or "").lower()
    p = path or ""
    if "/assessments" in p and m == "post":
        return BusinessMetric.assessment_created
    if "/submissions" in p and "/submit" in p and m == "post":
        return BusinessMetric.submission_completed
    return None


class RequestInstrumentation:
    """
    Begin/end hooks the HTTP layer calls around each request.

    Converts elapsed wall-clock time into record_response_time() calls and
    failures into record_error() calls. Knows nothing about how the framework
    detects request completion.
    """

    def __init__(
        self,
        service: MonitoringService,
        timer: Timer = time.perf_counter,
        slow_request_ms: Optional[float] = None,
    ) -> None:
        self._service = service
        self._timer = timer
        self._slow_request_ms = float(
            slow_request_ms if slow_request_ms is not None else service.config.slow_request_ms
        )

    def begin(self, request_id: str, operation: str, method: str = "", path: str = "") -> RequestToken:
        return RequestToken(request_id=request_id, operation=operation, started=self._timer(), method=method, path=path)

    def end(self, token: RequestToken, status_code: int) -> Optional[float]:
        """Record the request duration (ms). Returns None if the token was already completed."""
        if token.finished:
            logger.debug("Request token already completed requestId=%s", token.request_id)
            return None
        token.finished = True

        duration_ms = max(0.0, (self._timer() - token.started) * 1000.0)
        self._service.record_response_time(token.operation, duration_ms)

        metric = business_metric_for(token.method, token.path, status_code)
        if metric is not None:
            self._service.record_business_metric(metric, 1)

        if duration_ms > self._slow_request_ms:
            logger.warning(
                "Slow request detected method=%s path=%s duration=%.1fms status=%s",
                token.method,
                token.path,
                duration_ms,
                status_code,
            )
        return duration_ms

    def fail(self, token: RequestToken, error: BaseException) -> None:
        """Record a failed request: the error and, if not already recorded, its duration."""
        self._service.record_error(token.operation, error)
        if not token.finished:
            token.finished = True
            duration_ms = max(0.0, (self._timer() - token.started) * 1000.0)
            self._service.record_response_time(token.operation, duration_ms)
