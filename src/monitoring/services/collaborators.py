"""Interfaces of the collaborators the monitoring core consumes, plus default implementations."""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Protocol

import psutil

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
EventHandler = Callable[[str, Dict[str, Any]], None]


class EventSink(Protocol):
    def emit(self, event_name: str, payload: Dict[str, Any]) -> None: ...


class ProcessStatsProvider(Protocol):
    def memory_usage_percent(self) -> float: ...

    def cpu_usage_percent(self) -> float: ...


@dataclass(frozen=True)
class ConnectivityStatus:
    ok: bool
    message: str


ConnectivityProbe = Callable[[], ConnectivityStatus]


class EventBus:
    """
    In-process event sink with per-event subscribers.

    Handlers run synchronously in the emitting thread. A failing handler is
    logged and does not stop delivery to the others.
    """

    def __init__(self) -> None:
        self._handlers: Dict[str, List[EventHandler]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, event_name: str, handler: EventHandler) -> None:
        with self._lock:
            self._handlers[event_name].append(handler)

    def unsubscribe(self, event_name: str, handler: EventHandler) -> bool:
        with self._lock:
            handlers = self._handlers.get(event_name) or []
            if handler in handlers:
                handlers.remove(handler)
                return True
            return False

    def emit(self, event_name: str, payload: Dict[str, Any]) -> None:
        with self._lock:
            handlers = list(self._handlers.get(event_name) or [])
        for handler in handlers:
            try:
                handler(event_name, payload)
            except Exception:
                logger.exception("Event handler failed for event=%s", event_name)


class PsutilProcessStats:
    """Process resource readings backed by psutil."""

    def __init__(self, process: Optional[psutil.Process] = None) -> None:
        self._process = process or psutil.Process()
        # Prime the CPU counter; the first cpu_percent(None) call always returns 0.0.
        self._process.cpu_percent(interval=None)

    def memory_usage_percent(self) -> float:
        return float(self._process.memory_percent())

    def cpu_usage_percent(self) -> float:
        # Normalized to [0, 100] across all cores.
        cores = psutil.cpu_count() or 1
        return float(self._process.cpu_percent(interval=None)) / float(cores)

