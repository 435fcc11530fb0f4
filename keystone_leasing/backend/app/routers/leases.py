# backend/app/routers/leases.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import RequestContext, get_request_context
from ..db import get_db
from ..schemas import LeaseCreate, LeaseOut, LeaseTerminateIn, LeaseUpdate
from ..serializers import lease_to_dto
from ..services import leases as lease_service

router = APIRouter(prefix="/leases", tags=["leases"])


@router.post("", response_model=LeaseOut, status_code=201)
def create_lease(
    payload: LeaseCreate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return lease_to_dto(lease_service.create_lease(db, ctx, payload))


@router.get("", response_model=list[LeaseOut])
def list_leases(
    status: Optional[str] = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    rows = lease_service.list_leases(db, ctx, status=status, limit=limit)
    return [lease_to_dto(r) for r in rows]


@router.get("/{lease_id}", response_model=LeaseOut)
def get_lease(
    lease_id: int,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return lease_to_dto(lease_service.get_lease(db, ctx, lease_id))


@router.patch("/{lease_id}", response_model=LeaseOut)
def update_lease(
    lease_id: int,
    payload: LeaseUpdate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return lease_to_dto(lease_service.update_lease(db, ctx, lease_id, payload))


@router.post("/{lease_id}/send-for-signature", response_model=LeaseOut)
def send_for_signature(
    lease_id: int,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return lease_to_dto(lease_service.send_for_signature(db, ctx, lease_id))


@router.post("/{lease_id}/terminate", response_model=LeaseOut)
def terminate_lease(
    lease_id: int,
    payload: LeaseTerminateIn,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    lease = lease_service.terminate_lease(
        db,
        ctx,
        lease_id,
        termination_date=payload.termination_date,
        reason=payload.reason,
    )
    return lease_to_dto(lease)


@router.delete("/{lease_id}")
def delete_lease(
    lease_id: int,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    lease_service.delete_lease(db, ctx, lease_id)
    return {"ok": True}
