from __future__ import annotations

import logging
import uuid
from typing import Awaitable, Callable

from fastapi import Request
from starlette.responses import Response

from src.monitoring.services.instrumentation import operation_name
from src.monitoring.state import get_state

logger = logging.getLogger(__name__)

CallNext = Callable[[Request], Awaitable[Response]]


# PUBLIC_INTERFACE
async def instrument_requests(request: Request, call_next: CallNext) -> Response:
    """HTTP middleware: time every request and report failures to the monitoring service."""
    instrumentation = get_state(request.app).instrumentation
    request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
    method = request.method
    path = request.url.path

    token = instrumentation.begin(request_id, operation_name(method, path), method=method, path=path)
    try:
        response = await call_next(request)
    except Exception as exc:
        instrumentation.fail(token, exc)
        logger.error("Request error method=%s path=%s operation=%s", method, path, token.operation)
        raise

    instrumentation.end(token, response.status_code)
    response.headers.setdefault("x-request-id", request_id)
    return response
