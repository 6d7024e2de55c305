from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from src.monitoring.schemas.common import HealthResponse, utc_now
from src.monitoring.schemas.health import HealthReport, OverallStatus
from src.monitoring.state import get_state

router = APIRouter(tags=["Health"])


@router.get(
    "/",
    response_model=HealthResponse,
    summary="Liveness check",
    description="Basic service liveness check used by deployment and the frontend.",
    operation_id="liveness_check",
)
def liveness_check() -> HealthResponse:
    """Return service liveness status."""
    return HealthResponse(status="ok", message="Alive", timestamp=utc_now())


@router.get(
    "/health",
    response_model=HealthReport,
    responses={503: {"model": HealthReport}},
    summary="Health verdict",
    description=(
        "Runs the response time, error rate, memory and grading queue checks. "
        "Returns 200 for healthy/degraded and 503 for unhealthy."
    ),
    operation_id="health_status",
)
def health_status(request: Request) -> JSONResponse:
    """Return the tiered health verdict with individual checks."""
    state = get_state(request.app)
    verdict = state.monitor.get_health_status()
    report = HealthReport(
        status=verdict.status,
        checks=verdict.checks,
        timestamp=utc_now(),
        uptime_seconds=state.monitor.uptime_seconds,
        service=state.config.service_name,
    )
    status_code = 503 if verdict.status is OverallStatus.unhealthy else 200
    return JSONResponse(status_code=status_code, content=report.model_dump(mode="json", by_alias=True))
