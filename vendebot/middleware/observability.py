from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from vendebot.core.request_context import clear_request_context, get_request_context, set_request_context

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
QUIET_PATHS = {"/", "/health"}


def _log_level(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """Asigna un request id, mide la duración y deja una línea de log por request."""

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        set_request_context(request_id=request_id)

        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            path = request.url.path
            tenant_id = request.path_params.get("tenant_id") or get_request_context().get("tenant_id")
            level = logging.DEBUG if path in QUIET_PATHS and status_code < 400 else _log_level(status_code)
            logger.log(
                level,
                "%s %s -> %s",
                request.method,
                path,
                status_code,
                extra={
                    "tenant_id": tenant_id,
                    "endpoint": path,
                    "method": request.method,
                    "status_code": status_code,
                    "duration_ms": round((time.perf_counter() - start) * 1000, 2),
                },
            )
            clear_request_context()
