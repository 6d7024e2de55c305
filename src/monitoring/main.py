from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.monitoring.config import MonitorConfig, load_config
from src.monitoring.middleware import instrument_requests
from src.monitoring.routers import alerts, health, metrics
from src.monitoring.services.monitoring_service import MonitoringService
from src.monitoring.state import get_state, init_state

openapi_tags = [
    {"name": "Health", "description": "Service liveness and the tiered health verdict."},
    {"name": "Metrics", "description": "Current metrics, history, dashboard and Prometheus exposition."},
    {"name": "Alerts", "description": "Alert rules and the alerts they raise."},
]

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Start the metrics archive tick with the app and stop it deterministically on shutdown."""
    state = get_state(app)
    state.monitor.start()
    try:
        yield
    finally:
        await state.monitor.aclose(timeout=5.0)


def _env_frontend_url() -> str | None:
    # Support both:
    # - standardized: FRONTEND_URL
    # - legacy: REACT_APP_FRONTEND_URL
    return os.getenv("FRONTEND_URL") or os.getenv("REACT_APP_FRONTEND_URL")


def _env_cors_extra_origins() -> List[str]:
    # Comma-separated list for preview deployments, etc.
    raw = os.getenv("CORS_ALLOW_ORIGINS") or ""
    return [p.strip() for p in raw.split(",") if p.strip()]


def _allowed_origins() -> List[str]:
    origins: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]
    frontend_url = _env_frontend_url()
    if frontend_url:
        origins.append(frontend_url)
    origins.extend(_env_cors_extra_origins())

    # De-dupe while preserving order
    seen = set()
    return [o for o in origins if not (o in seen or seen.add(o))]


# PUBLIC_INTERFACE
def create_app(config: Optional[MonitorConfig] = None, monitor: Optional[MonitoringService] = None) -> FastAPI:
    """Build the monitoring API around a MonitoringService (created from env config when omitted)."""
    cfg = config or (monitor.config if monitor is not None else load_config())

    app = FastAPI(
        title="Assessment Monitoring API",
        description=(
            "In-process telemetry for the assessment engine: request timings, error rates, "
            "business metrics, alert rules, health verdict, dashboard data and Prometheus exposition."
        ),
        version="1.0.0",
        openapi_tags=openapi_tags,
        lifespan=_lifespan,
    )

    # Initialize typed app state (config + monitoring service)
    init_state(app, cfg, monitor)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_allowed_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(instrument_requests)

    app.include_router(health.router)
    app.include_router(metrics.router)
    app.include_router(alerts.router)
    return app


app = create_app()
