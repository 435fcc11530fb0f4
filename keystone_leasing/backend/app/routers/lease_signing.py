# backend/app/routers/lease_signing.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ..auth import RequestContext, get_request_context
from ..db import get_db
from ..schemas import (
    LeaseOut,
    LeaseSigningViewOut,
    ResendInvitationOut,
    SignLeaseIn,
    SignLeaseOut,
    UserSigningStatusOut,
)
from ..serializers import lease_to_dto, signing_progress_to_dto
from ..services import lease_signing

router = APIRouter(prefix="/lease-signing", tags=["lease-signing"])


def _client_ip(request: Request) -> str | None:
    fwd = request.headers.get("x-forwarded-for")
    if fwd:
        return fwd.split(",")[0].strip() or None
    return request.client.host if request.client else None


# registered before /{lease_id} so "pending" is not parsed as an id
@router.get("/pending", response_model=list[LeaseOut])
def pending_signatures(
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return [lease_to_dto(x) for x in lease_signing.get_pending_signatures(db, ctx)]


@router.get("/{lease_id}", response_model=LeaseSigningViewOut)
def lease_for_signing(
    lease_id: int,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    view = lease_signing.get_lease_for_signing(db, ctx, lease_id)
    st = view.user_signing_status
    return LeaseSigningViewOut(
        lease=lease_to_dto(view.lease),
        user_signing_status=UserSigningStatusOut(
            role=st.role,
            can_sign=st.can_sign,
            has_signed=st.has_signed,
            signed_at=st.signed_at,
        ),
        signing_progress=signing_progress_to_dto(view.progress),
    )


@router.post("/{lease_id}/sign", response_model=SignLeaseOut)
def sign(
    lease_id: int,
    payload: SignLeaseIn,
    request: Request,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    outcome = lease_signing.sign_lease(
        db,
        ctx,
        lease_id,
        agreed_to_terms=payload.agreed_to_terms,
        signature=payload.signature,
        ip_address=_client_ip(request),
    )
    return SignLeaseOut(
        lease=lease_to_dto(outcome.lease),
        signing_progress=signing_progress_to_dto(outcome.progress),
        already_signed=outcome.already_signed,
        activated=outcome.activated,
        message=outcome.message,
    )


@router.post("/{lease_id}/resend", response_model=ResendInvitationOut)
def resend(
    lease_id: int,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    n = lease_signing.resend_signing_invitation(db, ctx, lease_id)
    return ResendInvitationOut(reminders_sent=n, message=f"Signing reminders sent to {n} part{'y' if n == 1 else 'ies'}")
