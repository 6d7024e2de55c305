from __future__ import annotations

from collections.abc import AsyncIterator, Iterator
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Tuple

import httpx
import pytest

from src.monitoring.config import MonitorConfig
from src.monitoring.services.monitoring_service import MonitoringService


class FakeClock:
    """Deterministic clock; advance() moves time forward in milliseconds."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, ms: float) -> datetime:
        self.now = self.now + timedelta(milliseconds=ms)
        return self.now


class RecordingSink:
    """Event sink that keeps every emitted (event, payload) pair."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    def emit(self, event_name: str, payload: Dict[str, Any]) -> None:
        self.events.append((event_name, payload))

    def named(self, event_name: str) -> List[Dict[str, Any]]:
        return [p for name, p in self.events if name == event_name]


class FixedProcessStats:
    """Process stats provider returning whatever the test sets."""

    def __init__(self, memory: float = 40.0, cpu: float = 10.0) -> None:
        self.memory = memory
        self.cpu = cpu

    def memory_usage_percent(self) -> float:
        return self.memory

    def cpu_usage_percent(self) -> float:
        return self.cpu


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def process_stats() -> FixedProcessStats:
    return FixedProcessStats()


@pytest.fixture
def config() -> MonitorConfig:
    return MonitorConfig()


@pytest.fixture
def service(config, sink, process_stats, clock) -> Iterator[MonitoringService]:
    """MonitoringService wired to the fake collaborators; archive loop not started."""
    svc = MonitoringService(config=config, event_sink=sink, process_stats=process_stats, clock=clock)
    try:
        yield svc
    finally:
        svc.shutdown()


@pytest.fixture
def app(service: MonitoringService):
    """FastAPI app bound to the fixture service."""
    from src.monitoring.main import create_app

    return create_app(monitor=service)


@pytest.fixture
async def async_client(app) -> AsyncIterator[httpx.AsyncClient]:
    """
    Async HTTP client bound to the FastAPI ASGI app.

    httpx ASGITransport does not run lifespan events, so the archive loop stays
    stopped and tests drive ticks explicitly.
    """
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
