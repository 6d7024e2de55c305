from __future__ import annotations

import logging
import os
from dataclasses import dataclass

logger = logging.getLogger(__name__)


def _env_int(name: str, default: int) -> int:
    """Parse an int env var with a default."""
    try:
        return int(os.getenv(name, str(default)))
    except Exception:
        return int(default)


def _env_float(name: str, default: float) -> float:
    """Parse a float env var with a default."""
    try:
        return float(os.getenv(name, str(default)))
    except Exception:
        return float(default)


def _env_bool(name: str, default: bool = False) -> bool:
    """Parse a bool env var (true/false/1/0/yes/no/on/off)."""
    raw = os.getenv(name)
    if raw is None:
        return bool(default)
    val = raw.strip().lower()
    if val in ("1", "true", "yes", "y", "on"):
        return True
    if val in ("0", "false", "no", "n", "off"):
        return False
    return bool(default)


def _clamp_int(v: int, lo: int, hi: int) -> int:
    """Clamp integer to [lo, hi]."""
    return max(lo, min(hi, int(v)))


@dataclass(frozen=True)
class MemoryThresholds:
    """Memory usage percentages above which the health check warns / fails."""

    warn: float
    fail: float


STRICT_MEMORY_THRESHOLDS = MemoryThresholds(warn=80.0, fail=90.0)
RELAXED_MEMORY_THRESHOLDS = MemoryThresholds(warn=90.0, fail=95.0)


@dataclass(frozen=True)
class MonitorConfig:
    """Runtime configuration for the monitoring core, loaded from env."""

    service_name: str = "assessment-engine"

    # Archive tick: snapshot into history, then reset interval counters.
    metrics_interval_ms: int = 60000

    response_buffer_size: int = 1000
    history_size: int = 1000

    # Per-request SLO; single samples above it emit slo_breach.
    slo_ms: float = 500.0
    slow_request_ms: float = 1000.0

    # Pilot deployments run with relaxed memory thresholds.
    pilot_mode: bool = False

    trend_points: int = 60

    @property
    def memory_thresholds(self) -> MemoryThresholds:
        return RELAXED_MEMORY_THRESHOLDS if self.pilot_mode else STRICT_MEMORY_THRESHOLDS


# PUBLIC_INTERFACE
def load_config() -> MonitorConfig:
    """Load MonitorConfig from MONITOR_* env vars, clamping values to sane bounds."""
    service_name = (os.getenv("MONITOR_SERVICE_NAME") or "assessment-engine").strip() or "assessment-engine"

    metrics_interval_ms = _env_int("MONITOR_METRICS_INTERVAL_MS", 60000)
    response_buffer_size = _env_int("MONITOR_RESPONSE_BUFFER_SIZE", 1000)
    history_size = _env_int("MONITOR_HISTORY_SIZE", 1000)
    slo_ms = _env_float("MONITOR_SLO_MS", 500.0)
    slow_request_ms = _env_float("MONITOR_SLOW_REQUEST_MS", 1000.0)
    pilot_mode = _env_bool("MONITOR_PILOT_MODE", False)
    trend_points = _env_int("MONITOR_TREND_POINTS", 60)

    metrics_interval_ms = _clamp_int(metrics_interval_ms, 1000, 3600 * 1000)
    response_buffer_size = _clamp_int(response_buffer_size, 10, 100000)
    history_size = _clamp_int(history_size, 10, 100000)
    trend_points = _clamp_int(trend_points, 1, history_size)
    slo_ms = max(1.0, slo_ms)
    slow_request_ms = max(1.0, slow_request_ms)

    cfg = MonitorConfig(
        service_name=service_name,
        metrics_interval_ms=metrics_interval_ms,
        response_buffer_size=response_buffer_size,
        history_size=history_size,
        slo_ms=slo_ms,
        slow_request_ms=slow_request_ms,
        pilot_mode=pilot_mode,
        trend_points=trend_points,
    )
    logger.info(
        "Monitor config loaded service=%s interval=%sms buffer=%s history=%s pilot_mode=%s",
        cfg.service_name,
        cfg.metrics_interval_ms,
        cfg.response_buffer_size,
        cfg.history_size,
        cfg.pilot_mode,
    )
    return cfg
