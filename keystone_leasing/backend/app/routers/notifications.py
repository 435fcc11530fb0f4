# backend/app/routers/notifications.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import RequestContext, get_request_context
from ..db import get_db
from ..schemas import (
    NotificationOut,
    NotificationPageOut,
    NotificationPreferenceIn,
    NotificationPreferenceOut,
    PaginationOut,
    UnreadCountOut,
)
from ..serializers import notification_preference_to_dto, notification_to_dto
from ..services import notifications as svc

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationPageOut)
def list_notifications(
    unread_only: bool = Query(default=False),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    rows, total, unread = svc.list_notifications(db, ctx, unread_only=unread_only, limit=limit, offset=offset)
    return NotificationPageOut(
        notifications=[notification_to_dto(r) for r in rows],
        pagination=PaginationOut(total=total, limit=limit, offset=offset, has_more=offset + len(rows) < total),
        unread_count=unread,
    )


@router.get("/unread-count", response_model=UnreadCountOut)
def unread_count(db: Session = Depends(get_db), ctx: RequestContext = Depends(get_request_context)):
    return UnreadCountOut(unread_count=svc.unread_count(db, ctx))


@router.get("/preferences", response_model=NotificationPreferenceOut)
def get_preferences(db: Session = Depends(get_db), ctx: RequestContext = Depends(get_request_context)):
    return notification_preference_to_dto(svc.get_preferences(db, ctx))


@router.put("/preferences", response_model=NotificationPreferenceOut)
def update_preferences(
    payload: NotificationPreferenceIn,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return notification_preference_to_dto(svc.update_preferences(db, ctx, payload))


@router.post("/read-all", response_model=dict)
def mark_all_read(db: Session = Depends(get_db), ctx: RequestContext = Depends(get_request_context)):
    return {"ok": True, "updated": svc.mark_all_read(db, ctx)}


@router.delete("/read", response_model=dict)
def delete_read(db: Session = Depends(get_db), ctx: RequestContext = Depends(get_request_context)):
    return {"ok": True, "deleted": svc.delete_read_notifications(db, ctx)}


@router.post("/{notification_id}/read", response_model=NotificationOut)
def mark_read(
    notification_id: int,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return notification_to_dto(svc.mark_read(db, ctx, notification_id))


@router.delete("/{notification_id}", response_model=dict)
def delete_notification(
    notification_id: int,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    svc.delete_notification(db, ctx, notification_id)
    return {"ok": True}
