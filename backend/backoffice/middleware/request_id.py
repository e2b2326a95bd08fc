# backend/backoffice/middleware/request_id.py
from __future__ import annotations

import re
import uuid
from contextvars import ContextVar
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"
_SAFE_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")

request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def get_request_id() -> Optional[str]:
    return request_id_ctx.get()


def _incoming_id(request: Request) -> Optional[str]:
    rid = (request.headers.get(REQUEST_ID_HEADER) or "").strip()
    # Client ids end up in audit-adjacent logs; drop anything odd.
    return rid if _SAFE_ID.match(rid) else None


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Per-request correlation id.

    Reuses a well-formed incoming X-Request-ID, otherwise generates a UUID4.
    Stored in a ContextVar for the JSON log formatter and echoed back on the
    response, error envelopes included.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        rid = _incoming_id(request) or str(uuid.uuid4())
        request.state.request_id = rid

        token = request_id_ctx.set(rid)
        try:
            resp = await call_next(request)
            resp.headers[REQUEST_ID_HEADER] = rid
            return resp
        finally:
            request_id_ctx.reset(token)
