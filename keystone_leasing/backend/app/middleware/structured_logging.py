# backend/app/middleware/structured_logging.py
from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ..config import settings

log = logging.getLogger("keystone.request")


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """
    Emits one log line per request with:
      request_id, user_id (dev header, when present), method, path, status_code, latency_ms

    The JSON shape comes from logging_config.JsonFormatter; request fields
    travel as record extras.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        t0 = time.perf_counter()

        # The authenticated user is resolved inside handlers; the dev header
        # is good enough for a request log line.
        user_id: Optional[str] = request.headers.get(settings.dev_header_user_id)

        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            latency_ms = int((time.perf_counter() - t0) * 1000)
            log.info(
                "%s %s -> %s (%sms)",
                request.method,
                request.url.path,
                status_code,
                latency_ms,
                extra={"user_id": user_id} if user_id else {},
            )
