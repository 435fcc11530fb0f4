# backend/app/services/lease_signing.py
from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import exists, select, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from ..auth import RequestContext
from ..config import settings
from ..domain.audit import audit_write
from ..domain.signing_progress import SigningProgress, progress_for_lease
from ..errors import AlreadySigned, InvalidLeaseState, TransientStorageError, Unauthorized, ValidationFailed
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
from .lease_rules import ensure_no_lease_overlap
from .notifications import NotificationRequest, dispatch_safely
from .ownership import (
    LandlordParty,
    SigningParty,
    ensure_can_view,
    find_lease_tenant,
    is_landlord_of_record,
    landlord_user_id,
    lease_aggregate_options,
    load_lease,
    resolve_signing_party,
)

log = logging.getLogger("keystone.signing")

# postgres: serialization_failure, deadlock_detected, lock_not_available
_TRANSIENT_SQLSTATES = {"40001", "40P01", "55P03"}


def _utcnow() -> datetime:
    return datetime.utcnow()


def _fingerprint(signature: Optional[str]) -> Optional[str]:
    # drawn signatures are data-urls; the activity log keeps a digest, not the image
    if not signature:
        return None
    return hashlib.sha256(signature.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class SigningOutcome:
    lease: Lease
    party: SigningParty
    progress: SigningProgress
    already_signed: bool
    activated: bool

    @property
    def message(self) -> str:
        if self.already_signed:
            return "You have already signed this lease."
        if self.progress.is_fully_signed:
            return "Lease signed successfully! The lease is now active."
        return "Lease signed successfully. Waiting for other signatures."


@dataclass(frozen=True)
class UserSigningStatus:
    role: str
    can_sign: bool
    has_signed: bool
    signed_at: Optional[datetime]


@dataclass(frozen=True)
class SigningView:
    lease: Lease
    user_signing_status: UserSigningStatus
    progress: SigningProgress


@dataclass(frozen=True)
class _TxnResult:
    party: SigningParty
    already_signed: bool
    activated: bool


def _is_transient(exc: DBAPIError) -> bool:
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code in _TRANSIENT_SQLSTATES:
        return True
    msg = str(orig if orig is not None else exc).lower()
    return "database is locked" in msg or "database table is locked" in msg


def _party_signed_at(lease: Lease, party: SigningParty) -> Optional[datetime]:
    if isinstance(party, LandlordParty):
        return lease.landlord_signed_at
    for lt in lease.tenants:
        if lt.id == party.lease_tenant_id:
            return lt.signed_at
    return None


def _record_signature(
    db: Session, lease_id: int, party: SigningParty, now: datetime, ip_address: Optional[str]
) -> bool:
    """Conditional write: True only if this call stamped the signature."""
    signable = select(Lease.id).where(Lease.id == lease_id, Lease.status.in_(LeaseStatus.SIGNABLE))

    if isinstance(party, LandlordParty):
        stmt = (
            update(Lease)
            .where(
                Lease.id == lease_id,
                Lease.landlord_signed_at.is_(None),
                Lease.status.in_(LeaseStatus.SIGNABLE),
            )
            .values(landlord_signed_at=now, updated_at=now)
        )
    else:
        stmt = (
            update(LeaseTenant)
            .where(
                LeaseTenant.id == party.lease_tenant_id,
                LeaseTenant.signed_at.is_(None),
                LeaseTenant.lease_id.in_(signable),
            )
            .values(signed_at=now, signature_ip=ip_address)
        )

    res = db.execute(stmt.execution_options(synchronize_session=False))
    return res.rowcount == 1


def _try_activate(db: Session, lease_id: int) -> bool:
    """
    Flip to ACTIVE iff the landlord and every tenant have signed and nobody
    flipped it already. Only one transaction can see rowcount == 1.
    """
    unsigned_tenant = exists().where(LeaseTenant.lease_id == lease_id, LeaseTenant.signed_at.is_(None))
    any_tenant = exists().where(LeaseTenant.lease_id == lease_id)

    activated_at = _utcnow()
    res = db.execute(
        update(Lease)
        .where(
            Lease.id == lease_id,
            Lease.status.in_(LeaseStatus.SIGNABLE),
            Lease.landlord_signed_at.is_not(None),
            any_tenant,
            ~unsigned_tenant,
        )
        .values(status=LeaseStatus.ACTIVE, all_tenants_signed_at=activated_at, updated_at=activated_at)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        return False

    unit_id = db.scalar(select(Lease.unit_id).where(Lease.id == lease_id))
    db.execute(
        update(Unit)
        .where(Unit.id == unit_id)
        .values(status=UnitStatus.OCCUPIED)
        .execution_options(synchronize_session=False)
    )
    return True


def _sign_in_transaction(
    db: Session,
    ctx: RequestContext,
    lease_id: int,
    *,
    signature: Optional[str],
    ip_address: Optional[str],
) -> _TxnResult:
    db.expire_all()
    lease = load_lease(db, lease_id, for_update=True)
    party = resolve_signing_party(ctx, lease)

    if _party_signed_at(lease, party) is not None:
        raise AlreadySigned("You have already signed this lease")

    if lease.status not in LeaseStatus.SIGNABLE:
        raise InvalidLeaseState("This lease is not available for signing")

    now = _utcnow()
    if not _record_signature(db, lease.id, party, now, ip_address):
        # our read was stale; the write lock is held now, so this re-read is current
        lease = load_lease(db, lease_id)
        if _party_signed_at(lease, party) is not None:
            raise AlreadySigned("You have already signed this lease")
        raise InvalidLeaseState("This lease is not available for signing")

    if lease.status == LeaseStatus.DRAFT:
        # a draft skipped send-for-signature; take the unit lock and re-check the dates
        db.execute(select(Unit.id).where(Unit.id == lease.unit_id).with_for_update())
        ensure_no_lease_overlap(
            db,
            unit_id=lease.unit_id,
            start_date=lease.start_date,
            end_date=lease.end_date,
            ignore_lease_id=lease.id,
        )

    db.execute(
        update(Lease)
        .where(Lease.id == lease.id, Lease.status == LeaseStatus.DRAFT)
        .values(status=LeaseStatus.PENDING_SIGNATURE, updated_at=now)
        .execution_options(synchronize_session=False)
    )

    role = UserRole.LANDLORD if isinstance(party, LandlordParty) else UserRole.TENANT
    audit_write(
        db,
        actor_user_id=ctx.user_id,
        action="lease.signed",
        entity_type="Lease",
        entity_id=lease.id,
        after={
            "role": role,
            "signed_at": now.isoformat(),
            "ip_address": ip_address,
            "signature_sha256": _fingerprint(signature),
            "unit_number": lease.unit.unit_number,
        },
    )

    activated = _try_activate(db, lease.id)
    if activated:
        audit_write(
            db,
            actor_user_id=ctx.user_id,
            action="lease.activated",
            entity_type="Lease",
            entity_id=lease.id,
            before={"status": LeaseStatus.PENDING_SIGNATURE},
            after={"status": LeaseStatus.ACTIVE, "activated_by": ctx.user_id},
        )

    db.commit()
    return _TxnResult(party=party, already_signed=False, activated=activated)


def _signature_notifications(lease: Lease, party: SigningParty, signer_name: str) -> list[NotificationRequest]:
    unit_number = lease.unit.unit_number
    meta = {"lease_id": lease.id}

    if isinstance(party, LandlordParty):
        return [
            NotificationRequest(
                user_id=int(lt.tenant.user_id),
                type=NotificationType.LEASE_SIGNED,
                title="Landlord Signed Lease",
                message=f"{signer_name} has signed the lease agreement. Your signature is now required.",
                action_url=f"/dashboard/lease-signing/{lease.id}",
                metadata=meta,
            )
            for lt in lease.tenants
            if lt.signed_at is None
        ]

    return [
        NotificationRequest(
            user_id=landlord_user_id(lease),
            type=NotificationType.LEASE_SIGNED,
            title="Tenant Signed Lease",
            message=f"{signer_name} has signed the lease agreement for Unit {unit_number}.",
            action_url=f"/dashboard/leases/{lease.id}",
            metadata=meta,
        )
    ]


def _activation_notifications(lease: Lease) -> list[NotificationRequest]:
    unit_number = lease.unit.unit_number
    meta = {"lease_id": lease.id}

    out = [
        NotificationRequest(
            user_id=landlord_user_id(lease),
            type=NotificationType.LEASE_ACTIVATED,
            title="Lease Agreement Active",
            message=f"All parties have signed. The lease for Unit {unit_number} is now active.",
            action_url=f"/dashboard/leases/{lease.id}",
            metadata=meta,
        )
    ]
    for lt in lease.tenants:
        out.append(
            NotificationRequest(
                user_id=int(lt.tenant.user_id),
                type=NotificationType.LEASE_ACTIVATED,
                title="Lease Agreement Active",
                message="All parties have signed. Your lease is now active!",
                action_url="/dashboard/my-lease",
                metadata=meta,
            )
        )
    return out


def _signer_name(lease: Lease, party: SigningParty) -> str:
    if isinstance(party, LandlordParty):
        user = lease.unit.property.landlord.user
    else:
        user = next(lt.tenant.user for lt in lease.tenants if lt.id == party.lease_tenant_id)
    return user.name or user.email


# -------------------------
# Public operations
# -------------------------
def sign_lease(
    db: Session,
    ctx: RequestContext,
    lease_id: int,
    *,
    agreed_to_terms: bool,
    signature: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> SigningOutcome:
    """
    Record the caller's signature and activate the lease if it was the last one.

    Signing twice is a no-op (already_signed=True, nothing written, nothing sent).
    The lock + conditional updates run in one transaction, so two concurrent
    final signers produce exactly one activation.
    """
    if not agreed_to_terms:
        raise ValidationFailed("You must agree to the terms to sign the lease")

    max_retries = max(0, int(settings.signing_transient_retries))
    attempt = 0
    result: Optional[_TxnResult] = None
    while True:
        attempt += 1
        try:
            result = _sign_in_transaction(db, ctx, lease_id, signature=signature, ip_address=ip_address)
            break
        except AlreadySigned:
            db.rollback()
            break
        except DBAPIError as e:
            db.rollback()
            if not _is_transient(e):
                raise
            if attempt > max_retries:
                log.warning(
                    "signing conflict persisted after retry",
                    extra={"lease_id": lease_id, "user_id": ctx.user_id, "attempt": attempt},
                )
                raise TransientStorageError("The lease is being updated by another signer; please try again") from e
            log.info(
                "transient signing conflict; retrying",
                extra={"lease_id": lease_id, "user_id": ctx.user_id, "attempt": attempt},
            )
        except Exception:
            db.rollback()
            raise

    db.expire_all()
    lease = load_lease(db, lease_id)
    progress = progress_for_lease(lease)

    if result is None:
        result = _TxnResult(party=resolve_signing_party(ctx, lease), already_signed=True, activated=False)

    if result.already_signed:
        log.info("duplicate signature ignored", extra={"lease_id": lease_id, "user_id": ctx.user_id})
    else:
        log.info(
            "lease signed",
            extra={"lease_id": lease_id, "user_id": ctx.user_id, "party": type(result.party).__name__},
        )
        requests = _signature_notifications(lease, result.party, _signer_name(lease, result.party))
        if result.activated:
            log.info("lease activated", extra={"lease_id": lease_id, "user_id": ctx.user_id})
            requests += _activation_notifications(lease)
        dispatch_safely(db, requests)

    return SigningOutcome(
        lease=lease,
        party=result.party,
        progress=progress,
        already_signed=result.already_signed,
        activated=result.activated,
    )


def resend_signing_invitation(db: Session, ctx: RequestContext, lease_id: int) -> int:
    """Re-notify every party that has not signed yet. Never touches the lease row."""
    lease = load_lease(db, lease_id)
    if not is_landlord_of_record(ctx, lease):
        raise Unauthorized("Only the landlord of record can resend signing invitations")
    if lease.status not in LeaseStatus.SIGNABLE:
        raise InvalidLeaseState("This lease is not awaiting signatures")

    prop = lease.unit.property
    unit_number = lease.unit.unit_number
    action_url = f"/dashboard/lease-signing/{lease.id}"
    meta = {"lease_id": lease.id}

    requests: list[NotificationRequest] = []
    if lease.landlord_signed_at is None:
        requests.append(
            NotificationRequest(
                user_id=ctx.user_id,
                type=NotificationType.LEASE_SIGNATURE_REMINDER,
                title="Lease Signature Reminder",
                message=f"Reminder: Please sign the lease agreement for Unit {unit_number}",
                action_url=action_url,
                metadata=meta,
            )
        )
    for lt in lease.tenants:
        if lt.signed_at is None:
            requests.append(
                NotificationRequest(
                    user_id=int(lt.tenant.user_id),
                    type=NotificationType.LEASE_SIGNATURE_REMINDER,
                    title="Lease Signature Reminder",
                    message=f"Reminder: Please sign your lease agreement for {prop.name} - Unit {unit_number}",
                    action_url=action_url,
                    metadata=meta,
                )
            )

    sent = dispatch_safely(db, requests)
    log.info("signing reminders sent", extra={"lease_id": lease.id, "user_id": ctx.user_id})
    return sent


def get_lease_for_signing(db: Session, ctx: RequestContext, lease_id: int) -> SigningView:
    lease = load_lease(db, lease_id)
    ensure_can_view(ctx, lease)

    if lease.status not in LeaseStatus.VIEWABLE:
        raise InvalidLeaseState("This lease is not available for viewing")

    status = UserSigningStatus(role=ctx.role, can_sign=False, has_signed=False, signed_at=None)
    open_for_signing = lease.status in LeaseStatus.SIGNABLE

    if is_landlord_of_record(ctx, lease):
        status = UserSigningStatus(
            role=UserRole.LANDLORD,
            can_sign=lease.landlord_signed_at is None and open_for_signing,
            has_signed=lease.landlord_signed_at is not None,
            signed_at=lease.landlord_signed_at,
        )
    else:
        lt = find_lease_tenant(ctx, lease)
        if lt is not None:
            status = UserSigningStatus(
                role=UserRole.TENANT,
                can_sign=lt.signed_at is None and open_for_signing,
                has_signed=lt.signed_at is not None,
                signed_at=lt.signed_at,
            )

    return SigningView(lease=lease, user_signing_status=status, progress=progress_for_lease(lease))


def get_pending_signatures(db: Session, ctx: RequestContext) -> list[Lease]:
    """Leases still waiting on the caller's own signature, newest first."""
    base = (
        select(Lease)
        .where(
            Lease.deleted_at.is_(None),
            Lease.status.in_(LeaseStatus.SIGNABLE),
        )
        .options(*lease_aggregate_options())
        .order_by(Lease.created_at.desc(), Lease.id.desc())
    )

    if ctx.role == UserRole.LANDLORD:
        landlord = db.scalar(select(LandlordProfile).where(LandlordProfile.user_id == ctx.user_id))
        if landlord is None:
            return []
        q = (
            base.join(Unit, Unit.id == Lease.unit_id)
            .join(Property, Property.id == Unit.property_id)
            .where(Property.landlord_id == landlord.id, Lease.landlord_signed_at.is_(None))
        )
        return list(db.scalars(q).all())

    if ctx.role == UserRole.TENANT:
        tenant = db.scalar(select(TenantProfile).where(TenantProfile.user_id == ctx.user_id))
        if tenant is None:
            return []
        q = base.join(LeaseTenant, LeaseTenant.lease_id == Lease.id).where(
            LeaseTenant.tenant_id == tenant.id,
            LeaseTenant.signed_at.is_(None),
        )
        return list(db.scalars(q).all())

    return []
