# backend/app/errors.py
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

log = logging.getLogger("keystone.errors")


class LeaseError(Exception):
    """Base for domain errors surfaced to the API as JSON."""

    status_code = 400
    code = "lease_error"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.code
        super().__init__(self.detail)


class NotAuthenticated(LeaseError):
    status_code = 401
    code = "not_authenticated"


class Unauthorized(LeaseError):
    status_code = 403
    code = "unauthorized"


class NotFound(LeaseError):
    status_code = 404
    code = "not_found"


class AlreadySigned(LeaseError):
    status_code = 409
    code = "already_signed"


class InvalidLeaseState(LeaseError):
    status_code = 409
    code = "invalid_lease_state"


class ValidationFailed(LeaseError):
    status_code = 422
    code = "validation_failed"


class TransientStorageError(LeaseError):
    status_code = 503
    code = "transient_storage_error"


def install_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(LeaseError)
    async def lease_error_handler(request: Request, exc: LeaseError):
        if exc.status_code >= 500:
            log.warning("request failed: %s %s -> %s", request.method, request.url.path, exc.code)
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.code, "detail": exc.detail},
        )
