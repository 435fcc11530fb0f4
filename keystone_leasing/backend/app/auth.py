# backend/app/auth.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

import jwt  # PyJWT
from fastapi import Depends, Header, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from .config import settings
from .db import get_db
from .errors import NotAuthenticated, Unauthorized
from .models import AppUser, UserRole, UserStatus


@dataclass(frozen=True)
class RequestContext:
    """
    Who is acting on this request. Every service takes one explicitly;
    nothing below the router layer looks up the session on its own.
    """

    user_id: int
    role: str  # ADMIN | LANDLORD | TENANT | VENDOR

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def require_role(ctx: RequestContext, *roles: str) -> None:
    if ctx.role not in roles:
        raise Unauthorized(f"requires role in {sorted(roles)}")


# -------------------------
# JWT helpers
# -------------------------
def create_access_token(*, user_id: int, role: str, minutes: int | None = None) -> str:
    now = datetime.utcnow()
    exp_minutes = int(minutes if minutes is not None else settings.jwt_exp_minutes)
    payload: dict[str, Any] = {
        "sub": str(int(user_id)),
        "role": str(role),
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=exp_minutes)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any]:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise NotAuthenticated("Token expired")
    except jwt.InvalidTokenError:
        raise NotAuthenticated("Invalid token")


def _context_for_user(db: Session, user_id: int) -> RequestContext:
    user = db.scalar(select(AppUser).where(AppUser.id == int(user_id)))
    if user is None:
        raise NotAuthenticated("Unknown user")
    if user.status != UserStatus.ACTIVE:
        raise Unauthorized("User is suspended")
    # role always comes from the user record, never from the caller
    return RequestContext(user_id=int(user.id), role=str(user.role))


# -------------------------
# get_request_context
# -------------------------
def get_request_context(
    request: Request,
    db: Session = Depends(get_db),
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> RequestContext:
    """
    Auth modes supported (in priority order):
      1) Authorization: Bearer <token>
      2) dev header spoofing (ONLY if settings.auth_mode == "dev")
    """
    if authorization and str(authorization).lower().startswith("bearer "):
        token = str(authorization).split(" ", 1)[1].strip()
        claims = decode_access_token(token)
        sub = str(claims.get("sub") or "")
        if not sub.isdigit():
            raise NotAuthenticated("Token missing sub")
        return _context_for_user(db, int(sub))

    if settings.auth_mode == "dev":
        raw = (request.headers.get(settings.dev_header_user_id) or "").strip()
        if not raw:
            raise NotAuthenticated(f"Missing {settings.dev_header_user_id} for dev auth")
        if not raw.isdigit():
            raise NotAuthenticated(f"{settings.dev_header_user_id} must be a user id")
        return _context_for_user(db, int(raw))

    raise NotAuthenticated("Not authenticated")
