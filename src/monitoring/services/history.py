from __future__ import annotations

import asyncio
import logging
from collections import deque
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Deque, List, Optional

from src.monitoring.schemas.metrics import MetricSnapshot

if TYPE_CHECKING:
    from src.monitoring.services.monitoring_service import MonitoringService

logger = logging.getLogger(__name__)


class MetricsHistory:
    """Bounded FIFO of archived snapshots (oldest evicted first)."""

    def __init__(self, capacity: int = 1000) -> None:
        self._capacity = max(1, int(capacity))
        self._items: Deque[MetricSnapshot] = deque(maxlen=self._capacity)

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._items)

    def append(self, snapshot: MetricSnapshot) -> None:
        self._items.append(snapshot.model_copy(deep=True))

    def recent(self, limit: Optional[int] = None) -> List[MetricSnapshot]:
        """The most recent `limit` snapshots (all when limit is None or <= 0), oldest first."""
        items = list(self._items)
        if limit is not None and limit > 0:
            items = items[-int(limit):]
        return [s.model_copy(deep=True) for s in items]


# PUBLIC_INTERFACE
async def archive_loop(service: "MonitoringService", shutdown_event: asyncio.Event) -> None:
    """
    Background loop that runs the archive tick once per metrics interval.

    Each tick computes the interval's metrics, evaluates alert rules, appends the
    snapshot to history and resets the interval counters (see MonitoringService.tick).
    Errors are logged and the loop keeps going.
    """
    interval = max(1.0, service.config.metrics_interval_ms / 1000.0)
    logger.info("Metrics archiver started (interval=%ss, history=%s)", interval, service.config.history_size)

    while not shutdown_event.is_set():
        tick_started = datetime.now(timezone.utc)
        try:
            await asyncio.wait_for(shutdown_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass
        if shutdown_event.is_set():
            break

        try:
            service.tick()
        except Exception:
            logger.exception("Metrics archive tick failed")

        elapsed = (datetime.now(timezone.utc) - tick_started).total_seconds()
        if elapsed > interval * 2:
            logger.warning("Metrics archive tick ran late (elapsed=%.3fs, interval=%ss)", elapsed, interval)

    logger.info("Metrics archiver stopped")
