# backend/app/middleware/request_id.py
from __future__ import annotations

import re
import uuid
from contextvars import ContextVar
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"

# ids end up verbatim in JSON log lines and response headers
_SAFE_ID = re.compile(r"^[A-Za-z0-9._:-]{1,64}$")

_request_id: ContextVar[Optional[str]] = ContextVar("keystone_request_id", default=None)


def get_request_id() -> Optional[str]:
    """Id of the request being handled, read by logging_config.JsonFormatter."""
    return _request_id.get()


def _incoming_or_new(request: Request) -> str:
    # starlette headers are case-insensitive
    candidate = (request.headers.get(REQUEST_ID_HEADER) or "").strip()
    if _SAFE_ID.match(candidate):
        return candidate
    return uuid.uuid4().hex


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Binds one id per request so the sign, notification and email log lines
    of a single user action share a request_id. A caller-supplied id is kept
    when it is short and printable; anything else is replaced.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        rid = _incoming_or_new(request)
        request.state.request_id = rid
        token = _request_id.set(rid)
        try:
            response = await call_next(request)
        finally:
            _request_id.reset(token)
        response.headers[REQUEST_ID_HEADER] = rid
        return response
