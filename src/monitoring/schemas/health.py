from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import Field

from src.monitoring.schemas.alerts import Alert
from src.monitoring.schemas.common import CamelModel
from src.monitoring.schemas.metrics import DashboardTrends, MetricSnapshot


class CheckStatus(str, Enum):
    passed = "pass"
    warn = "warn"
    fail = "fail"


class OverallStatus(str, Enum):
    healthy = "healthy"
    degraded = "degraded"
    unhealthy = "unhealthy"


class HealthCheck(CamelModel):
    """Result of one health check."""

    name: str = Field(..., description="Check identifier (e.g. response_time_p95).")
    status: CheckStatus = Field(..., description="pass | warn | fail.")
    message: str = Field(..., description="Human-readable explanation.")
    value: Optional[float] = Field(default=None, description="Observed value, when the check is numeric.")
    threshold: Optional[float] = Field(default=None, description="Failure threshold, when the check is numeric.")
    informational: bool = Field(
        False, description="Informational checks are listed but do not affect the overall status."
    )


class HealthStatus(CamelModel):
    """Overall verdict plus the individual checks."""

    status: OverallStatus = Field(..., description="healthy | degraded | unhealthy.")
    checks: List[HealthCheck] = Field(default_factory=list, description="Individual check results.")


class HealthReport(HealthStatus):
    """Response model for GET /health."""

    timestamp: datetime = Field(..., description="UTC time of the report.")
    uptime_seconds: float = Field(..., ge=0, alias="uptimeSeconds", description="Seconds since the service started.")
    service: str = Field(..., description="Service name.")


class DashboardData(CamelModel):
    """Everything the performance dashboard renders in one payload."""

    metrics: MetricSnapshot = Field(..., description="Current metrics.")
    trends: DashboardTrends = Field(..., description="Recent history series.")
    alerts: List[Alert] = Field(default_factory=list, description="Unresolved alerts.")
    health_status: HealthStatus = Field(..., alias="healthStatus", description="Health verdict.")
