from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse

from src.monitoring.errors import ValidationError
from src.monitoring.schemas.alerts import Alert
from src.monitoring.schemas.common import ErrorResponse
from src.monitoring.schemas.health import DashboardData
from src.monitoring.schemas.metrics import (
    BusinessMetricRequest,
    GradingQueueStats,
    MetricSnapshot,
    MetricsHistoryResponse,
)
from src.monitoring.services.exporter import PROMETHEUS_CONTENT_TYPE
from src.monitoring.state import get_state

router = APIRouter(tags=["Metrics"])


@router.get(
    "/metrics",
    response_model=MetricSnapshot,
    summary="Current metrics",
    description="Metrics recomputed from the current interval's samples and counters.",
    operation_id="get_current_metrics",
)
def get_current_metrics(request: Request) -> MetricSnapshot:
    """Return the current metric snapshot."""
    return get_state(request.app).monitor.get_current_metrics()


@router.get(
    "/metrics/history",
    response_model=MetricsHistoryResponse,
    summary="Metrics history",
    description="Archived per-interval snapshots, oldest first.",
    operation_id="get_metrics_history",
)
def get_metrics_history(
    request: Request,
    limit: Optional[int] = Query(default=None, ge=1, le=100000, description="Return only the most recent N."),
) -> MetricsHistoryResponse:
    """Return archived snapshots."""
    items = get_state(request.app).monitor.get_metrics_history(limit)
    return MetricsHistoryResponse(items=items, total=len(items), limit=limit)


@router.get(
    "/metrics/prometheus",
    response_class=PlainTextResponse,
    summary="Prometheus metrics",
    description="Current metrics in Prometheus text exposition format 0.0.4.",
    operation_id="get_prometheus_metrics",
)
def get_prometheus_metrics(request: Request) -> PlainTextResponse:
    """Return the Prometheus exposition."""
    body = get_state(request.app).monitor.prometheus_text()
    return PlainTextResponse(content=body, media_type=PROMETHEUS_CONTENT_TYPE)


@router.get(
    "/dashboard",
    response_model=DashboardData,
    summary="Dashboard data",
    description="Current metrics, recent trends, open alerts and the health verdict.",
    operation_id="get_dashboard_data",
)
def get_dashboard_data(request: Request) -> DashboardData:
    """Return the dashboard payload."""
    return get_state(request.app).monitor.get_dashboard_data()


@router.post(
    "/api/metrics/business",
    status_code=202,
    responses={400: {"model": ErrorResponse}},
    summary="Record business metric",
    description="Record a business event (assessment_created, submission_completed) or gauge value.",
    operation_id="record_business_metric",
)
def record_business_metric(request: Request, payload: BusinessMetricRequest) -> dict:
    """Record a business metric."""
    try:
        get_state(request.app).monitor.record_business_metric(payload.name, payload.value)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.message) from exc
    return {"accepted": True, "metric": payload.name.value}


@router.put(
    "/api/metrics/grading-queue",
    response_model=List[Alert],
    summary="Update grading queue stats",
    description="Replace the grading queue counters and evaluate alert rules; returns alerts raised.",
    operation_id="update_grading_queue_metrics",
)
def update_grading_queue_metrics(request: Request, payload: GradingQueueStats) -> List[Alert]:
    """Update grading queue stats."""
    return get_state(request.app).monitor.update_grading_queue_metrics(payload)
