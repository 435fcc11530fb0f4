# backend/app/services/notifications.py
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from ..auth import RequestContext
from ..config import settings
from ..errors import NotFound
from ..models import AppUser, Notification, NotificationChannel, NotificationPreference
from ..schemas import NotificationPreferenceIn

log = logging.getLogger("keystone.notifications")


@dataclass(frozen=True)
class NotificationRequest:
    user_id: int
    type: str
    title: str
    message: str
    action_url: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DispatchResult:
    in_app_id: Optional[int]
    email_queued: bool
    skipped: bool = False


def _utcnow() -> datetime:
    return datetime.utcnow()


def absolute_url(path: Optional[str]) -> Optional[str]:
    if not path:
        return None
    if path.startswith("http://") or path.startswith("https://"):
        return path
    return settings.app_url.rstrip("/") + "/" + path.lstrip("/")


def _muted_types(pref: Optional[NotificationPreference]) -> set[str]:
    if pref is None or not pref.muted_types_json:
        return set()
    try:
        x = json.loads(pref.muted_types_json)
    except ValueError:
        return set()
    return {str(t) for t in x} if isinstance(x, list) else set()


def get_or_default_preference(db: Session, user_id: int) -> NotificationPreference:
    pref = db.scalar(select(NotificationPreference).where(NotificationPreference.user_id == int(user_id)))
    if pref is None:
        # not persisted until the user saves their settings
        pref = NotificationPreference(user_id=int(user_id), in_app_enabled=True, email_enabled=True, muted_types_json="[]")
    return pref


# -------------------------
# Dispatch
# -------------------------
def _enqueue_email(user: AppUser, req: NotificationRequest) -> bool:
    from ..workers.notification_tasks import send_notification_email

    try:
        send_notification_email.delay(
            to_email=user.email,
            to_name=user.name,
            subject=req.title,
            message=req.message,
            action_url=absolute_url(req.action_url),
        )
    except Exception:
        # the in-app row is already committed; a broker outage must not undo it
        log.exception(
            "failed to enqueue notification email",
            extra={"user_id": user.id, "notification_type": req.type},
        )
        return False
    return True


def dispatch(db: Session, req: NotificationRequest) -> DispatchResult:
    """
    Fan one notification out to the channels the recipient has enabled.

    Commits the in-app row in its own unit of work; callers must not have
    pending writes they still intend to roll back.
    """
    user = db.scalar(select(AppUser).where(AppUser.id == int(req.user_id)))
    if user is None:
        raise NotFound(f"notification recipient {req.user_id} not found")

    pref = get_or_default_preference(db, user.id)
    if req.type in _muted_types(pref):
        log.info("notification muted by recipient", extra={"user_id": user.id, "notification_type": req.type})
        return DispatchResult(in_app_id=None, email_queued=False, skipped=True)

    in_app_id: Optional[int] = None
    if pref.in_app_enabled:
        row = Notification(
            user_id=user.id,
            type=req.type,
            channel=NotificationChannel.IN_APP,
            title=req.title,
            message=req.message,
            action_url=req.action_url,
            metadata_json=json.dumps(req.metadata or {}, default=str),
            is_read=False,
            created_at=_utcnow(),
        )
        db.add(row)
        db.commit()
        in_app_id = int(row.id)

    email_queued = False
    if settings.email_enabled and pref.email_enabled and user.email:
        email_queued = _enqueue_email(user, req)

    return DispatchResult(in_app_id=in_app_id, email_queued=email_queued)


def dispatch_safely(db: Session, requests: Iterable[NotificationRequest]) -> int:
    """
    Best-effort fan-out after a state change has been committed.

    Failures are logged and swallowed: a lost notification never undoes the
    signature (or termination) that triggered it. Returns how many succeeded.
    """
    sent = 0
    for req in requests:
        try:
            dispatch(db, req)
            sent += 1
        except Exception:
            db.rollback()
            log.exception(
                "notification dispatch failed",
                extra={"user_id": req.user_id, "notification_type": req.type},
            )
    return sent


# -------------------------
# Inbox
# -------------------------
def list_notifications(
    db: Session,
    ctx: RequestContext,
    *,
    unread_only: bool = False,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[Notification], int, int]:
    """Returns (page, total matching, unread total)."""
    where = [Notification.user_id == ctx.user_id]
    if unread_only:
        where.append(Notification.is_read.is_(False))

    rows = db.scalars(
        select(Notification).where(*where).order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).offset(offset)
    ).all()
    total = int(db.scalar(select(func.count()).select_from(Notification).where(*where)) or 0)
    return list(rows), total, unread_count(db, ctx)


def unread_count(db: Session, ctx: RequestContext) -> int:
    n = db.scalar(
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == ctx.user_id, Notification.is_read.is_(False))
    )
    return int(n or 0)


def _must_get_own(db: Session, ctx: RequestContext, notification_id: int) -> Notification:
    row = db.scalar(
        select(Notification).where(Notification.id == int(notification_id), Notification.user_id == ctx.user_id)
    )
    if row is None:
        raise NotFound("Notification not found")
    return row


def mark_read(db: Session, ctx: RequestContext, notification_id: int) -> Notification:
    row = _must_get_own(db, ctx, notification_id)
    if not row.is_read:
        row.is_read = True
        row.read_at = _utcnow()
        db.commit()
    return row


def mark_all_read(db: Session, ctx: RequestContext) -> int:
    res = db.execute(
        update(Notification)
        .where(Notification.user_id == ctx.user_id, Notification.is_read.is_(False))
        .values(is_read=True, read_at=_utcnow())
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return int(res.rowcount or 0)


def delete_notification(db: Session, ctx: RequestContext, notification_id: int) -> None:
    row = _must_get_own(db, ctx, notification_id)
    db.delete(row)
    db.commit()


def delete_read_notifications(db: Session, ctx: RequestContext) -> int:
    res = db.execute(
        delete(Notification)
        .where(Notification.user_id == ctx.user_id, Notification.is_read.is_(True))
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return int(res.rowcount or 0)


# -------------------------
# Preferences
# -------------------------
def get_preferences(db: Session, ctx: RequestContext) -> NotificationPreference:
    return get_or_default_preference(db, ctx.user_id)


def update_preferences(db: Session, ctx: RequestContext, payload: NotificationPreferenceIn) -> NotificationPreference:
    pref = db.scalar(select(NotificationPreference).where(NotificationPreference.user_id == ctx.user_id))
    if pref is None:
        pref = NotificationPreference(user_id=ctx.user_id)
        db.add(pref)

    pref.in_app_enabled = bool(payload.in_app_enabled)
    pref.email_enabled = bool(payload.email_enabled)
    pref.muted_types_json = json.dumps(sorted(set(payload.muted_types)))
    pref.updated_at = _utcnow()
    db.commit()
    return pref
