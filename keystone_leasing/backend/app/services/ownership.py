# backend/app/services/ownership.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from ..auth import RequestContext
from ..errors import NotFound, Unauthorized
from ..models import (
    LandlordProfile,
    Lease,
    LeaseTenant,
    Property,
    TenantProfile,
    Unit,
    UserRole,
)


# -------------------------
# Signing parties
# -------------------------
@dataclass(frozen=True)
class LandlordParty:
    landlord_id: int
    user_id: int


@dataclass(frozen=True)
class TenantParty:
    lease_tenant_id: int
    tenant_id: int
    user_id: int


SigningParty = Union[LandlordParty, TenantParty]


def lease_aggregate_options():
    return (
        selectinload(Lease.unit).selectinload(Unit.property).selectinload(Property.landlord).selectinload(LandlordProfile.user),
        selectinload(Lease.tenants).selectinload(LeaseTenant.tenant).selectinload(TenantProfile.user),
    )


def load_lease(db: Session, lease_id: int, *, for_update: bool = False) -> Lease:
    """
    Lease with unit -> property -> landlord user and every LeaseTenant -> tenant user.

    for_update=True takes the row lock on the lease (no-op on SQLite, which
    serializes writers itself) and refreshes anything already in the session.
    """
    q = (
        select(Lease)
        .where(Lease.id == int(lease_id), Lease.deleted_at.is_(None))
        .options(*lease_aggregate_options())
        .execution_options(populate_existing=True)
    )
    if for_update:
        q = q.with_for_update(of=Lease)
    row = db.scalar(q)
    if row is None:
        raise NotFound("Lease not found")
    return row


def landlord_user_id(lease: Lease) -> int:
    return int(lease.unit.property.landlord.user_id)


def is_landlord_of_record(ctx: RequestContext, lease: Lease) -> bool:
    return ctx.role == UserRole.LANDLORD and landlord_user_id(lease) == ctx.user_id


def find_lease_tenant(ctx: RequestContext, lease: Lease) -> Optional[LeaseTenant]:
    if ctx.role != UserRole.TENANT:
        return None
    for lt in lease.tenants:
        if int(lt.tenant.user_id) == ctx.user_id:
            return lt
    return None


def resolve_signing_party(ctx: RequestContext, lease: Lease) -> SigningParty:
    if is_landlord_of_record(ctx, lease):
        return LandlordParty(landlord_id=int(lease.unit.property.landlord_id), user_id=ctx.user_id)

    lt = find_lease_tenant(ctx, lease)
    if lt is not None:
        return TenantParty(lease_tenant_id=int(lt.id), tenant_id=int(lt.tenant_id), user_id=ctx.user_id)

    raise Unauthorized("Unauthorized to sign this lease")


def ensure_can_view(ctx: RequestContext, lease: Lease) -> None:
    if ctx.is_admin or is_landlord_of_record(ctx, lease) or find_lease_tenant(ctx, lease) is not None:
        return
    raise Unauthorized("Unauthorized to view this lease")


def ensure_can_manage(ctx: RequestContext, lease: Lease) -> None:
    """Landlord of record or an admin."""
    if ctx.is_admin or is_landlord_of_record(ctx, lease):
        return
    raise Unauthorized("Only the landlord of record can manage this lease")


def must_get_landlord_profile(db: Session, ctx: RequestContext) -> LandlordProfile:
    row = db.scalar(select(LandlordProfile).where(LandlordProfile.user_id == ctx.user_id))
    if row is None:
        raise Unauthorized("Landlord profile required")
    return row


def must_get_unit(db: Session, unit_id: int) -> Unit:
    row = db.scalar(
        select(Unit)
        .join(Property, Property.id == Unit.property_id)
        .where(Unit.id == int(unit_id), Property.deleted_at.is_(None))
        .options(selectinload(Unit.property))
    )
    if row is None:
        raise NotFound("Unit not found")
    return row

