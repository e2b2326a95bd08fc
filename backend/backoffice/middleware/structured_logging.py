# backend/backoffice/middleware/structured_logging.py
from __future__ import annotations

import logging
import time
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ..config import settings

log = logging.getLogger("backoffice.http")

SILENT_PATHS = frozenset({"/api/health"})


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """
    Access log: one `http_request` record per call, carrying method, path,
    status and latency under the `http` extra and the caller's dev-header
    identity under `user_id` / `role`. Health probes are not logged.

    Sits inside RequestIDMiddleware; the formatter adds the request id.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in SILENT_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            http = {
                "method": request.method,
                "path": request.url.path,
                "status_code": status_code,
                "latency_ms": round((time.perf_counter() - started) * 1000, 1),
            }
            level = logging.WARNING if status_code >= 500 else logging.INFO
            log.log(
                level,
                "http_request",
                extra={
                    "http": http,
                    # bearer identities are resolved later, inside the handler
                    "user_id": request.headers.get(settings.dev_header_user_id),
                    "role": request.headers.get(settings.dev_header_user_role),
                },
            )
