from __future__ import annotations

from typing import Any, Dict, Optional


class MonitoringError(Exception):
    """Base class for errors raised by the monitoring core."""

    def __init__(self, message: str, meta: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.meta: Dict[str, Any] = dict(meta or {})


class ValidationError(MonitoringError):
    """Invalid caller input (alert rule definitions, business metric names/values)."""


class DataError(MonitoringError, ValueError):
    """A sample that cannot be recorded (negative, NaN or infinite duration)."""
