# backend/app/logging_config.py
from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

from .middleware.request_id import get_request_id

# record extras promoted to top-level JSON keys
_CONTEXT_FIELDS = ("user_id", "lease_id", "notification_type", "party", "attempt")


class JsonFormatter(logging.Formatter):
    """
    One JSON object per line: ts, level, logger, message, request_id (inside
    a request), plus whichever signing/notification context fields the call
    site passed via ``extra=``.
    """

    def __init__(self, *, service: str = "keystone", version: str | None = None) -> None:
        super().__init__()
        self.service = service
        self.version = version

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "service": self.service,
            "message": record.getMessage(),
        }
        if self.version:
            payload["version"] = self.version

        rid = get_request_id()
        if rid:
            payload["request_id"] = rid

        for k in _CONTEXT_FIELDS:
            v = getattr(record, k, None)
            if v is not None:
                payload[k] = v

        if record.exc_info:
            payload["exc_type"] = record.exc_info[0].__name__ if record.exc_info[0] else None
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


def _level(env_name: str, default: str) -> str:
    return (os.getenv(env_name) or default).upper()


def configure_logging() -> None:
    """
    Root logger -> stdout. LOG_FORMAT=text gives plain lines for local runs;
    anything else (the default) emits JSON.
    """
    from .config import settings

    level = _level("LOG_LEVEL", "INFO")

    root = logging.getLogger()
    root.setLevel(level)
    # uvicorn --reload re-imports main; avoid stacking handlers
    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    if (os.getenv("LOG_FORMAT") or "json").lower() == "text":
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    else:
        handler.setFormatter(JsonFormatter(version=settings.app_version))
    root.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(level)
    logging.getLogger("sqlalchemy.engine").setLevel(_level("SQL_LOG_LEVEL", "WARNING"))
    logging.getLogger("celery").setLevel(_level("CELERY_LOG_LEVEL", "INFO"))
