from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import Field, field_validator

from src.monitoring.schemas.common import CamelModel, Severity


class MetricKey(str, Enum):
    """Closed set of metrics an alert rule can watch."""

    response_time_p50 = "response_time_p50"
    response_time_p95 = "response_time_p95"
    response_time_p99 = "response_time_p99"
    response_time_average = "response_time_average"
    requests_per_second = "requests_per_second"
    error_rate = "error_rate"
    memory_usage = "memory_usage"
    cpu_usage = "cpu_usage"
    grading_queue_waiting = "grading_queue_waiting"
    grading_queue_active = "grading_queue_active"
    grading_queue_failed = "grading_queue_failed"
    grading_avg_processing_time = "grading_avg_processing_time"


class ComparisonOperator(str, Enum):
    """How an observed value is compared against a rule threshold."""

    gt = "gt"
    lt = "lt"
    eq = "eq"
    gte = "gte"
    lte = "lte"


class AlertRuleCreate(CamelModel):
    """Request model for creating an alert rule."""

    name: str = Field(..., min_length=1, description="Human-friendly rule name.")
    metric: MetricKey = Field(..., description="Metric the rule watches.")
    threshold: float = Field(..., allow_inf_nan=False, description="Threshold compared against the metric.")
    operator: ComparisonOperator = Field(ComparisonOperator.gt, description="Comparison operator.")
    severity: Severity = Field(Severity.medium, description="Severity of alerts raised by this rule.")
    enabled: bool = Field(True, description="Whether the rule is evaluated.")
    cooldown_period: int = Field(
        300000,
        ge=0,
        le=7 * 24 * 3600 * 1000,
        alias="cooldownPeriod",
        description="Minimum time between two alerts from this rule (ms).",
    )

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be empty")
        return v


class AlertRule(AlertRuleCreate):
    """A registered alert rule."""

    id: str = Field(..., description="Rule id, unique for the process lifetime.")
    last_triggered: Optional[datetime] = Field(
        default=None,
        alias="lastTriggered",
        description="UTC time of the last alert raised by this rule; null if it never fired.",
    )


class Alert(CamelModel):
    """An alert raised by a rule."""

    id: str = Field(..., description="Alert id.")
    rule_id: str = Field(..., alias="ruleId", description="Id of the rule that raised the alert.")
    message: str = Field(..., description="Human-readable alert message.")
    severity: Severity = Field(..., description="Severity copied from the rule.")
    timestamp: datetime = Field(..., description="UTC time the alert was raised.")
    value: float = Field(..., description="Observed metric value.")
    threshold: float = Field(..., description="Rule threshold at the time the alert was raised.")
    resolved: bool = Field(False, description="Whether the alert has been resolved.")
    resolved_at: Optional[datetime] = Field(
        default=None, alias="resolvedAt", description="UTC time the alert was resolved; null while open."
    )


class AlertRuleListResponse(CamelModel):
    """Envelope for listing rules."""

    items: List[AlertRule] = Field(..., description="Registered alert rules.")
    total: int = Field(..., ge=0, description="Total count of rules returned.")


class AlertRuleCreatedResponse(CamelModel):
    """Response for POST /api/alerts/rules."""

    rule_id: str = Field(..., alias="ruleId", description="Id assigned to the new rule.")
    rule: AlertRule = Field(..., description="The stored rule.")


class AlertListResponse(CamelModel):
    """Envelope for listing alerts."""

    items: List[Alert] = Field(..., description="Alerts, oldest first.")
    total: int = Field(..., ge=0, description="Total count of alerts returned.")
