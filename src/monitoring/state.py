from __future__ import annotations

from dataclasses import dataclass

from fastapi import FastAPI

from src.monitoring.config import MonitorConfig
from src.monitoring.services.instrumentation import RequestInstrumentation
from src.monitoring.services.monitoring_service import MonitoringService


@dataclass
class AppState:
    """Typed app.state container for shared singletons."""

    config: MonitorConfig
    monitor: MonitoringService
    instrumentation: RequestInstrumentation


# PUBLIC_INTERFACE
def init_state(app: FastAPI, config: MonitorConfig, monitor: MonitoringService | None = None) -> AppState:
    """Initialize app.state with the monitoring service and its request hooks."""
    monitor = monitor or MonitoringService(config=config)
    state = AppState(config=config, monitor=monitor, instrumentation=RequestInstrumentation(monitor))
    app.state.state = state
    return state


# PUBLIC_INTERFACE
def get_state(app: FastAPI) -> AppState:
    """Fetch typed AppState from a FastAPI app."""
    return app.state.state  # type: ignore[attr-defined]
