from __future__ import annotations

import asyncio
import logging
import threading
import time
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from src.monitoring.config import MonitorConfig
from src.monitoring.errors import ValidationError
from src.monitoring.schemas.alerts import Alert, AlertRule, AlertRuleCreate
from src.monitoring.schemas.common import utc_now
from src.monitoring.schemas.health import DashboardData, HealthStatus
from src.monitoring.schemas.metrics import BusinessMetric, GradingQueueStats, MetricSnapshot
from src.monitoring.services import exporter
from src.monitoring.services.aggregator import compute_snapshot
from src.monitoring.services.alert_engine import AlertRuleEngine
from src.monitoring.services.collaborators import (
    Clock,
    ConnectivityProbe,
    EventBus,
    EventSink,
    ProcessStatsProvider,
    PsutilProcessStats,
)
from src.monitoring.services.health_evaluator import HealthEvaluator
from src.monitoring.services.history import MetricsHistory, archive_loop
from src.monitoring.services.recorder import IntervalWindow, SampleRecorder

logger = logging.getLogger(__name__)


class MonitorEvent(str, Enum):
    error = "error"
    business_metric = "business_metric"
    slo_breach = "slo_breach"
    alert = "alert"
    alert_resolved = "alert_resolved"


class MonitoringService:
    """
    In-process telemetry engine for the assessment service.

    Ingests request timings and errors, derives interval metrics, evaluates
    alert rules, grades health and keeps a bounded history of per-interval
    snapshots. A single re-entrant lock guards the recorder, the rule and
    alert sets and the history. Read methods return deep copies.

    Collaborators (event sink, process stats, connectivity probe, clock) are
    injected; defaults are an EventBus, psutil readings and utc_now.
    """

    def __init__(
        self,
        config: Optional[MonitorConfig] = None,
        event_sink: Optional[EventSink] = None,
        process_stats: Optional[ProcessStatsProvider] = None,
        clock: Optional[Clock] = None,
        connectivity_probe: Optional[ConnectivityProbe] = None,
        install_default_rules: bool = True,
    ) -> None:
        self.config = config or MonitorConfig()
        self.events: EventSink = event_sink if event_sink is not None else EventBus()
        self._process_stats = process_stats if process_stats is not None else PsutilProcessStats()
        self._clock: Clock = clock or utc_now

        self._lock = threading.RLock()
        self._recorder = SampleRecorder(self.config.response_buffer_size)
        self._rules = AlertRuleEngine(install_defaults=install_default_rules)
        self._history = MetricsHistory(self.config.history_size)
        self._health = HealthEvaluator(self.config.memory_thresholds, connectivity_probe)
        self._registry = exporter.build_registry(self.get_current_metrics, self.config.service_name)

        self._started_monotonic = time.monotonic()
        self._archive_task: Optional[asyncio.Task] = None
        self._archive_shutdown: Optional[asyncio.Event] = None
        self._closed = False

    # ------------------------------------------------------------------ events

    def _emit(self, event: MonitorEvent, payload: Dict[str, Any]) -> None:
        try:
            self.events.emit(event.value, payload)
        except Exception:
            logger.exception("Event sink failed for event=%s", event.value)

    def _emit_alerts(self, alerts: List[Alert]) -> None:
        for alert in alerts:
            self._emit(MonitorEvent.alert, alert.model_dump(by_alias=True))

    # --------------------------------------------------------------- ingestion

    # PUBLIC_INTERFACE
    def record_response_time(self, operation: str, duration_ms: float) -> None:
        """Record one request duration (ms). Raises DataError for negative/NaN/infinite durations."""
        with self._lock:
            value = self._recorder.record_response_time(operation, duration_ms)

        slo = float(self.config.slo_ms)
        if value > slo:
            logger.warning("SLO breach detected operation=%s duration=%sms slo=%sms", operation, value, slo)
            self._emit(MonitorEvent.slo_breach, {"operation": operation, "duration": value, "slo": slo})

    # PUBLIC_INTERFACE
    def record_error(self, operation: str, error: BaseException) -> None:
        """Count an error for `operation`, log it and emit the `error` event. Never raises."""
        with self._lock:
            self._recorder.record_error(operation)

        try:
            logger.error(
                "Assessment service error in %s: %s",
                operation,
                error,
                exc_info=(type(error), error, error.__traceback__) if isinstance(error, BaseException) else None,
            )
        except Exception:
            logger.exception("Failed logging recorded error for operation=%s", operation)
        self._emit(MonitorEvent.error, {"operation": operation, "error": error})

    # PUBLIC_INTERFACE
    def record_business_metric(self, name: Union[BusinessMetric, str], value: float = 1.0) -> None:
        """Apply a business event (counter increment) or gauge update. Raises ValidationError for unknown names."""
        try:
            metric = BusinessMetric(name)
        except ValueError:
            raise ValidationError(f"unknown business metric: {name}", meta={"metric": str(name)}) from None

        with self._lock:
            self._recorder.record_business_metric(metric, value)
        self._emit(MonitorEvent.business_metric, {"metric": metric.value, "value": value})

    # PUBLIC_INTERFACE
    def update_grading_queue_metrics(self, stats: Union[GradingQueueStats, Mapping[str, Any]]) -> List[Alert]:
        """Replace the grading queue stats and evaluate alert rules against them; returns alerts raised."""
        if not isinstance(stats, GradingQueueStats):
            try:
                stats = GradingQueueStats.model_validate(dict(stats))
            except (PydanticValidationError, TypeError, ValueError) as exc:
                raise ValidationError("invalid grading queue stats") from exc

        with self._lock:
            self._recorder.set_grading_queue(stats)
        return self.evaluate_alert_rules()

    # ------------------------------------------------------------------- reads

    def _compute_locked(self) -> MetricSnapshot:
        return compute_snapshot(
            self._recorder.window(),
            self._recorder.assessment_stats,
            self._recorder.grading_queue,
            self._process_stats,
            self._clock(),
        )

    # PUBLIC_INTERFACE
    def get_current_metrics(self) -> MetricSnapshot:
        """Recompute metrics from the live interval window and return a copy."""
        with self._lock:
            return self._compute_locked().model_copy(deep=True)

    # PUBLIC_INTERFACE
    def get_metrics_history(self, limit: Optional[int] = None) -> List[MetricSnapshot]:
        """Most recent `limit` archived snapshots (all when omitted), oldest first."""
        with self._lock:
            return self._history.recent(limit)

    # PUBLIC_INTERFACE
    def get_health_status(self) -> HealthStatus:
        with self._lock:
            snapshot = self._compute_locked()
        return self._health.evaluate(snapshot)

    # PUBLIC_INTERFACE
    def get_dashboard_data(self) -> DashboardData:
        """Current metrics, recent trends, open alerts and the health verdict in one payload."""
        with self._lock:
            snapshot = self._compute_locked().model_copy(deep=True)
            history = self._history.recent(self.config.trend_points)
            alerts = self._rules.alerts()
        return DashboardData(
            metrics=snapshot,
            trends=exporter.build_trends(history, self.config.metrics_interval_ms, self._clock()),
            alerts=alerts,
            health_status=self._health.evaluate(snapshot),
        )

    # PUBLIC_INTERFACE
    def prometheus_text(self) -> str:
        """Prometheus text exposition (0.0.4) of the current metrics."""
        return exporter.exposition(self._registry)

    @property
    def uptime_seconds(self) -> float:
        return max(0.0, time.monotonic() - self._started_monotonic)

    # ------------------------------------------------------------------ alerts

    # PUBLIC_INTERFACE
    def add_alert_rule(self, rule: Union[AlertRuleCreate, Mapping[str, Any]]) -> str:
        """Register a rule and return its id. Raises ValidationError; nothing is stored on failure."""
        with self._lock:
            return self._rules.add_rule(rule).id

    # PUBLIC_INTERFACE
    def remove_alert_rule(self, rule_id: str) -> bool:
        with self._lock:
            return self._rules.remove_rule(rule_id)

    # PUBLIC_INTERFACE
    def get_alert_rules(self) -> List[AlertRule]:
        with self._lock:
            return self._rules.rules()

    # PUBLIC_INTERFACE
    def get_alert_rule(self, rule_id: str) -> Optional[AlertRule]:
        with self._lock:
            return self._rules.get_rule(rule_id)

    # PUBLIC_INTERFACE
    def get_active_alerts(self) -> List[Alert]:
        """Unresolved alerts, oldest first."""
        with self._lock:
            return self._rules.alerts()

    # PUBLIC_INTERFACE
    def get_alerts(self, include_resolved: bool = False) -> List[Alert]:
        with self._lock:
            return self._rules.alerts(include_resolved=include_resolved)

    # PUBLIC_INTERFACE
    def get_alert(self, alert_id: str) -> Optional[Alert]:
        with self._lock:
            return self._rules.get_alert(alert_id)

    # PUBLIC_INTERFACE
    def resolve_alert(self, alert_id: str) -> bool:
        """Resolve an open alert. False (no-op) when unknown or already resolved."""
        with self._lock:
            resolved = self._rules.resolve(alert_id, self._clock())
        if resolved is None:
            return False
        self._emit(MonitorEvent.alert_resolved, resolved.model_dump(by_alias=True))
        return True

    # PUBLIC_INTERFACE
    def evaluate_alert_rules(self) -> List[Alert]:
        """Evaluate enabled rules against freshly computed metrics; returns alerts raised."""
        with self._lock:
            snapshot = self._compute_locked()
            raised = self._rules.evaluate(snapshot, self._clock())
        self._emit_alerts(raised)
        return raised

    # ------------------------------------------------------------------- ticks

    # PUBLIC_INTERFACE
    def tick(self) -> MetricSnapshot:
        """
        Archive tick: snapshot the finished interval, evaluate rules, append to history.

        The interval buffers are swapped out under the lock, so samples recorded
        concurrently land in the next interval rather than being lost.
        """
        with self._lock:
            window: IntervalWindow = self._recorder.detach()
            assessment_stats = self._recorder.assessment_stats.model_copy(deep=True)
            grading_queue = self._recorder.grading_queue.model_copy(deep=True)

        snapshot = compute_snapshot(window, assessment_stats, grading_queue, self._process_stats, self._clock())

        with self._lock:
            raised = self._rules.evaluate(snapshot, self._clock())
            self._history.append(snapshot)
            history_len = len(self._history)

        logger.debug(
            "Metrics archived requests=%s errors=%s samples=%s history=%s",
            window.total_requests,
            window.total_errors,
            len(window.samples),
            history_len,
        )
        self._emit_alerts(raised)
        return snapshot.model_copy(deep=True)

    # PUBLIC_INTERFACE
    def start(self) -> None:
        """Start the periodic archive tick on the running event loop. No-op if already running."""
        if self._closed:
            raise RuntimeError("monitoring service has been shut down")
        if self._archive_task is not None and not self._archive_task.done():
            return
        self._archive_shutdown = asyncio.Event()
        self._archive_task = asyncio.get_running_loop().create_task(archive_loop(self, self._archive_shutdown))

    # PUBLIC_INTERFACE
    def shutdown(self) -> None:
        """Stop the archive tick. Idempotent and safe when the tick was never started."""
        if self._closed:
            return
        self._closed = True
        if self._archive_shutdown is not None:
            self._archive_shutdown.set()
        logger.info("Assessment monitoring service shutdown")

    # PUBLIC_INTERFACE
    async def aclose(self, timeout: float = 5.0) -> None:
        """shutdown() and wait for the archive loop to exit."""
        self.shutdown()
        task = self._archive_task
        if task is None:
            return
        try:
            await asyncio.wait_for(task, timeout=timeout)
        except Exception:
            logger.exception("Error stopping metrics archiver task")
        finally:
            self._archive_task = None

    @property
    def running(self) -> bool:
        return self._archive_task is not None and not self._archive_task.done()
