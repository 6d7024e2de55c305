from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import Field

from src.monitoring.schemas.common import CamelModel, utc_now


class OperationKind(str, Enum):
    """Known assessment operations; other routes are named from method + path."""

    create_assessment = "create_assessment"
    get_assessment = "get_assessment"
    create_submission = "create_submission"
    submit_response = "submit_response"
    grade_submission = "grade_submission"


class BusinessMetric(str, Enum):
    """Business events and gauges fed in by the assessment domain services."""

    assessment_created = "assessment_created"
    submission_completed = "submission_completed"
    average_score = "average_score"
    completion_rate = "completion_rate"
    active_assessments = "active_assessments"


class ResponseTimeStats(CamelModel):
    """Response time percentiles over the current window, in milliseconds."""

    p50: float = Field(0.0, ge=0, description="50th percentile (ms).")
    p95: float = Field(0.0, ge=0, description="95th percentile (ms).")
    p99: float = Field(0.0, ge=0, description="99th percentile (ms).")
    average: float = Field(0.0, ge=0, description="Arithmetic mean (ms).")


class ThroughputStats(CamelModel):
    requests_per_second: float = Field(0.0, ge=0, alias="requestsPerSecond")
    assessments_per_minute: float = Field(0.0, ge=0, alias="assessmentsPerMinute")
    submissions_per_minute: float = Field(0.0, ge=0, alias="submissionsPerMinute")


class AssessmentStats(CamelModel):
    total_assessments: int = Field(0, ge=0, alias="totalAssessments")
    active_assessments: int = Field(0, ge=0, alias="activeAssessments")
    completed_submissions: int = Field(0, ge=0, alias="completedSubmissions")
    average_score: float = Field(0.0, ge=0, alias="averageScore")
    completion_rate: float = Field(0.0, ge=0, alias="completionRate")


class SystemHealthStats(CamelModel):
    memory_usage: float = Field(0.0, ge=0, alias="memoryUsage", description="Process memory usage (%).")
    cpu_usage: float = Field(0.0, ge=0, alias="cpuUsage", description="Process CPU usage (%).")
    error_rate: float = Field(0.0, ge=0, alias="errorRate", description="Errors per 100 requests in the window.")
    availability: float = Field(100.0, ge=0, description="Availability percentage.")


class GradingQueueStats(CamelModel):
    """Grading queue counters reported by the (external) job queue."""

    waiting: int = Field(0, ge=0, description="Jobs waiting to be graded.")
    active: int = Field(0, ge=0, description="Jobs currently being graded.")
    completed: int = Field(0, ge=0, description="Jobs completed.")
    failed: int = Field(0, ge=0, description="Jobs that failed.")
    avg_processing_time: float = Field(
        0.0, ge=0, alias="avgProcessingTime", description="Average processing time per job (ms)."
    )


class MetricSnapshot(CamelModel):
    """Point-in-time view of every metric the monitor derives."""

    timestamp: datetime = Field(default_factory=utc_now, description="UTC time the snapshot was computed.")
    response_time: ResponseTimeStats = Field(default_factory=ResponseTimeStats, alias="responseTime")
    throughput: ThroughputStats = Field(default_factory=ThroughputStats)
    assessment_stats: AssessmentStats = Field(default_factory=AssessmentStats, alias="assessmentStats")
    system_health: SystemHealthStats = Field(default_factory=SystemHealthStats, alias="systemHealth")
    grading_queue: GradingQueueStats = Field(default_factory=GradingQueueStats, alias="gradingQueue")


class BusinessMetricRequest(CamelModel):
    """Request body for POST /api/metrics/business."""

    name: BusinessMetric = Field(..., description="Business metric identifier.")
    value: float = Field(1.0, ge=0, description="Metric value (increments ignore it).")


class MetricsHistoryResponse(CamelModel):
    """Envelope for listing archived snapshots."""

    items: List[MetricSnapshot] = Field(..., description="Snapshots, oldest first.")
    total: int = Field(..., ge=0, description="Number of snapshots returned.")
    limit: Optional[int] = Field(default=None, description="Requested limit, if any.")


class TrendPoint(CamelModel):
    """A single dashboard trend data point."""

    timestamp: datetime = Field(..., description="Synthesized UTC timestamp for the archived interval.")
    value: float = Field(..., description="Metric value for the interval.")


class DashboardTrends(CamelModel):
    response_time: List[TrendPoint] = Field(default_factory=list, alias="responseTime")
    throughput: List[TrendPoint] = Field(default_factory=list)
    error_rate: List[TrendPoint] = Field(default_factory=list, alias="errorRate")
