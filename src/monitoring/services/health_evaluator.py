from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from src.monitoring.config import MemoryThresholds, STRICT_MEMORY_THRESHOLDS
from src.monitoring.schemas.health import CheckStatus, HealthCheck, HealthStatus, OverallStatus
from src.monitoring.schemas.metrics import MetricSnapshot
from src.monitoring.services.collaborators import ConnectivityProbe

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TieredCheck:
    """A numeric check that warns above `warn` and fails above `fail`."""

    name: str
    warn: float
    fail: float
    pass_message: str
    warn_message: str
    fail_message: str

    def run(self, value: float) -> HealthCheck:
        if value > self.fail:
            status, message = CheckStatus.fail, self.fail_message
        elif value > self.warn:
            status, message = CheckStatus.warn, self.warn_message
        else:
            status, message = CheckStatus.passed, self.pass_message
        return HealthCheck(name=self.name, status=status, message=message, value=value, threshold=self.fail)


RESPONSE_TIME_CHECK = TieredCheck(
    name="response_time_p95",
    warn=300,
    fail=500,
    pass_message="Response time within SLO",
    warn_message="P95 response time approaching SLO limit",
    fail_message="P95 response time exceeds SLO",
)

ERROR_RATE_CHECK = TieredCheck(
    name="error_rate",
    warn=2,
    fail=5,
    pass_message="Error rate normal",
    warn_message="Error rate elevated",
    fail_message="Error rate too high",
)

GRADING_QUEUE_CHECK = TieredCheck(
    name="grading_queue",
    warn=500,
    fail=1000,
    pass_message="Grading queue normal",
    warn_message="Grading queue backed up",
    fail_message="Grading queue severely backed up",
)


def _memory_check(thresholds: MemoryThresholds) -> TieredCheck:
    return TieredCheck(
        name="memory_usage",
        warn=thresholds.warn,
        fail=thresholds.fail,
        pass_message="Memory usage normal",
        warn_message="Memory usage high",
        fail_message="Memory usage critical",
    )


# PUBLIC_INTERFACE
def combine_statuses(checks: List[HealthCheck]) -> OverallStatus:
    """Any fail -> unhealthy; otherwise any warn -> degraded; else healthy. Informational checks are ignored."""
    overall = OverallStatus.healthy
    for check in checks:
        if check.informational:
            continue
        if check.status is CheckStatus.fail:
            return OverallStatus.unhealthy
        if check.status is CheckStatus.warn:
            overall = OverallStatus.degraded
    return overall


class HealthEvaluator:
    def __init__(
        self,
        memory_thresholds: MemoryThresholds = STRICT_MEMORY_THRESHOLDS,
        connectivity_probe: Optional[ConnectivityProbe] = None,
    ) -> None:
        self._memory_check = _memory_check(memory_thresholds)
        self._connectivity_probe = connectivity_probe

    def _connectivity_check(self) -> HealthCheck:
        if self._connectivity_probe is None:
            return HealthCheck(
                name="database",
                status=CheckStatus.passed,
                message="Database check not configured",
                informational=True,
            )
        try:
            result = self._connectivity_probe()
        except Exception:
            logger.exception("Connectivity probe failed")
            return HealthCheck(
                name="database", status=CheckStatus.fail, message="Connectivity probe failed", informational=True
            )
        return HealthCheck(
            name="database",
            status=CheckStatus.passed if result.ok else CheckStatus.fail,
            message=result.message,
            informational=True,
        )

    def evaluate(self, snapshot: MetricSnapshot) -> HealthStatus:
        checks = [
            RESPONSE_TIME_CHECK.run(snapshot.response_time.p95),
            ERROR_RATE_CHECK.run(snapshot.system_health.error_rate),
            self._memory_check.run(snapshot.system_health.memory_usage),
            GRADING_QUEUE_CHECK.run(float(snapshot.grading_queue.waiting)),
            self._connectivity_check(),
        ]
        return HealthStatus(status=combine_statuses(checks), checks=checks)
