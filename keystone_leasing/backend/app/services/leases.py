# backend/app/services/leases.py
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..auth import RequestContext, require_role
from ..domain.audit import audit_write
from ..errors import InvalidLeaseState, Unauthorized, ValidationFailed
from ..models import (
    LandlordProfile,
    Lease,
    LeaseStatus,
    LeaseTenant,
    NotificationType,
    Property,
    TenantProfile,
    Unit,
    UnitStatus,
    UserRole,
)
from ..schemas import LeaseCreate, LeaseUpdate
from .lease_rules import ensure_no_lease_overlap
from .notifications import NotificationRequest, dispatch_safely
from .ownership import (
    ensure_can_manage,
    ensure_can_view,
    is_landlord_of_record,
    lease_aggregate_options,
    load_lease,
    must_get_landlord_profile,
    must_get_unit,
)

log = logging.getLogger("keystone.leases")


def _utcnow() -> datetime:
    return datetime.utcnow()


def _lease_snapshot(lease: Lease) -> dict:
    return {
        "status": lease.status,
        "unit_id": lease.unit_id,
        "start_date": lease.start_date,
        "end_date": lease.end_date,
        "rent_amount": lease.rent_amount,
        "deposit": lease.deposit,
    }


def _tenant_requests(lease: Lease, *, type: str, title: str, message: str, action_url: str) -> list[NotificationRequest]:
    return [
        NotificationRequest(
            user_id=int(lt.tenant.user_id),
            type=type,
            title=title,
            message=message,
            action_url=action_url,
            metadata={"lease_id": lease.id},
        )
        for lt in lease.tenants
    ]


# -------------------------
# Create
# -------------------------
def create_lease(db: Session, ctx: RequestContext, payload: LeaseCreate) -> Lease:
    require_role(ctx, UserRole.LANDLORD, UserRole.ADMIN)

    unit = must_get_unit(db, payload.unit_id)
    if ctx.role == UserRole.LANDLORD:
        landlord = must_get_landlord_profile(db, ctx)
        if unit.property.landlord_id != landlord.id:
            raise Unauthorized("Unit does not belong to this landlord")

    tenants = db.scalars(
        select(TenantProfile).where(TenantProfile.id.in_(payload.tenant_ids), TenantProfile.deleted_at.is_(None))
    ).all()
    found = {t.id for t in tenants}
    missing = [tid for tid in payload.tenant_ids if tid not in found]
    if missing:
        raise ValidationFailed(f"Unknown tenant ids: {missing}")

    ensure_no_lease_overlap(db, unit_id=unit.id, start_date=payload.start_date, end_date=payload.end_date)

    now = _utcnow()
    lease = Lease(
        unit_id=unit.id,
        type=payload.type,
        status=LeaseStatus.DRAFT,
        start_date=payload.start_date,
        end_date=payload.end_date,
        rent_amount=payload.rent_amount,
        deposit=payload.deposit,
        late_fee_amount=payload.late_fee_amount,
        late_fee_days=payload.late_fee_days,
        rent_due_day=payload.rent_due_day,
        terms=payload.terms,
        created_at=now,
        updated_at=now,
    )
    db.add(lease)
    db.flush()

    # first tenant listed is the primary
    for i, tid in enumerate(payload.tenant_ids):
        db.add(LeaseTenant(lease_id=lease.id, tenant_id=tid, is_primary_tenant=(i == 0), created_at=now))

    audit_write(
        db,
        actor_user_id=ctx.user_id,
        action="lease.create",
        entity_type="Lease",
        entity_id=lease.id,
        after={**_lease_snapshot(lease), "tenant_ids": list(payload.tenant_ids)},
    )
    db.commit()

    log.info("lease created", extra={"lease_id": lease.id, "user_id": ctx.user_id})
    lease = load_lease(db, lease.id)
    dispatch_safely(
        db,
        _tenant_requests(
            lease,
            type=NotificationType.LEASE_CREATED,
            title="New Lease Created",
            message=f"A new lease has been created for {lease.unit.property.name} - Unit {lease.unit.unit_number}.",
            action_url="/dashboard/my-lease",
        ),
    )
    return lease


# -------------------------
# Signature request
# -------------------------
def send_for_signature(db: Session, ctx: RequestContext, lease_id: int) -> Lease:
    lease = load_lease(db, lease_id)
    if not is_landlord_of_record(ctx, lease):
        raise Unauthorized("Only the landlord of record can send a lease for signature")
    if lease.status != LeaseStatus.DRAFT:
        raise InvalidLeaseState("Only draft leases can be sent for signature")

    ensure_no_lease_overlap(
        db,
        unit_id=lease.unit_id,
        start_date=lease.start_date,
        end_date=lease.end_date,
        ignore_lease_id=lease.id,
    )

    before = _lease_snapshot(lease)
    lease.status = LeaseStatus.PENDING_SIGNATURE
    lease.updated_at = _utcnow()
    audit_write(
        db,
        actor_user_id=ctx.user_id,
        action="lease.send_for_signature",
        entity_type="Lease",
        entity_id=lease.id,
        before=before,
        after=_lease_snapshot(lease),
    )
    db.commit()

    log.info("lease sent for signature", extra={"lease_id": lease.id, "user_id": ctx.user_id})
    dispatch_safely(
        db,
        _tenant_requests(
            lease,
            type=NotificationType.LEASE_SIGNATURE_REQUESTED,
            title="Signature Requested",
            message=f"Please review and sign your lease for {lease.unit.property.name} - Unit {lease.unit.unit_number}.",
            action_url=f"/dashboard/lease-signing/{lease.id}",
        ),
    )
    return load_lease(db, lease.id)


# -------------------------
# Read
# -------------------------
def get_lease(db: Session, ctx: RequestContext, lease_id: int) -> Lease:
    lease = load_lease(db, lease_id)
    ensure_can_view(ctx, lease)
    return lease


def list_leases(
    db: Session,
    ctx: RequestContext,
    *,
    status: Optional[str] = None,
    limit: int = 100,
) -> list[Lease]:
    q = (
        select(Lease)
        .where(Lease.deleted_at.is_(None))
        .options(*lease_aggregate_options())
        .order_by(Lease.created_at.desc(), Lease.id.desc())
        .limit(limit)
    )
    if status:
        q = q.where(Lease.status == status)

    if ctx.is_admin:
        pass
    elif ctx.role == UserRole.LANDLORD:
        q = (
            q.join(Unit, Unit.id == Lease.unit_id)
            .join(Property, Property.id == Unit.property_id)
            .join(LandlordProfile, LandlordProfile.id == Property.landlord_id)
            .where(LandlordProfile.user_id == ctx.user_id)
        )
    elif ctx.role == UserRole.TENANT:
        q = (
            q.join(LeaseTenant, LeaseTenant.lease_id == Lease.id)
            .join(TenantProfile, TenantProfile.id == LeaseTenant.tenant_id)
            .where(TenantProfile.user_id == ctx.user_id)
        )
    else:
        return []

    return list(db.scalars(q).all())


# -------------------------
# Update
# -------------------------
def update_lease(db: Session, ctx: RequestContext, lease_id: int, payload: LeaseUpdate) -> Lease:
    """
    Edit money and wording of a lease nobody has signed yet.

    Status is not editable here; it only moves through signing and termination.
    """
    lease = load_lease(db, lease_id, for_update=True)
    ensure_can_manage(ctx, lease)

    if lease.status not in LeaseStatus.SIGNABLE:
        raise InvalidLeaseState("Only draft or pending leases can be edited")
    if lease.landlord_signed_at is not None or any(lt.signed_at is not None for lt in lease.tenants):
        raise InvalidLeaseState("Lease already has signatures and can no longer be edited")

    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise ValidationFailed("No fields to update")

    before = {**_lease_snapshot(lease), **{k: getattr(lease, k) for k in changes}}
    for field, value in changes.items():
        setattr(lease, field, value)
    lease.updated_at = _utcnow()

    audit_write(
        db,
        actor_user_id=ctx.user_id,
        action="lease.update",
        entity_type="Lease",
        entity_id=lease.id,
        before=before,
        after={**_lease_snapshot(lease), **changes, "updated_fields": sorted(changes)},
    )
    db.commit()

    log.info("lease updated", extra={"lease_id": lease.id, "user_id": ctx.user_id})
    return load_lease(db, lease.id)


# -------------------------
# Terminate / delete
# -------------------------
def terminate_lease(
    db: Session,
    ctx: RequestContext,
    lease_id: int,
    *,
    termination_date: date,
    reason: str,
) -> Lease:
    lease = load_lease(db, lease_id)
    ensure_can_manage(ctx, lease)

    reason = (reason or "").strip()
    if len(reason) < 10:
        raise ValidationFailed("Termination reason must be at least 10 characters")
    if lease.status in (LeaseStatus.TERMINATED, LeaseStatus.EXPIRED):
        raise InvalidLeaseState(f"Lease is already {lease.status.lower()}")
    if termination_date < lease.start_date:
        raise ValidationFailed("termination_date cannot be before the lease start_date")

    before = _lease_snapshot(lease)
    was_occupying = lease.status in (LeaseStatus.ACTIVE, LeaseStatus.EXPIRING_SOON)
    lease.status = LeaseStatus.TERMINATED
    lease.end_date = termination_date
    lease.notes = reason
    lease.updated_at = _utcnow()
    # a draft or unsigned lease never moved anyone in
    if was_occupying:
        lease.unit.status = UnitStatus.VACANT

    audit_write(
        db,
        actor_user_id=ctx.user_id,
        action="lease.terminate",
        entity_type="Lease",
        entity_id=lease.id,
        before=before,
        after={**_lease_snapshot(lease), "reason": reason},
    )
    db.commit()

    log.info("lease terminated", extra={"lease_id": lease.id, "user_id": ctx.user_id})
    dispatch_safely(
        db,
        _tenant_requests(
            lease,
            type=NotificationType.LEASE_TERMINATED,
            title="Lease Terminated",
            message=f"Your lease for Unit {lease.unit.unit_number} has been terminated effective {termination_date.isoformat()}.",
            action_url="/dashboard/my-lease",
        ),
    )
    return load_lease(db, lease.id)


def delete_lease(db: Session, ctx: RequestContext, lease_id: int) -> None:
    lease = load_lease(db, lease_id)
    ensure_can_manage(ctx, lease)
    if lease.status != LeaseStatus.DRAFT:
        raise InvalidLeaseState("Only draft leases can be deleted")

    now = _utcnow()
    lease.deleted_at = now
    lease.updated_at = now
    audit_write(
        db,
        actor_user_id=ctx.user_id,
        action="lease.delete",
        entity_type="Lease",
        entity_id=lease.id,
        before=_lease_snapshot(lease),
    )
    db.commit()
    log.info("lease deleted", extra={"lease_id": lease.id, "user_id": ctx.user_id})

