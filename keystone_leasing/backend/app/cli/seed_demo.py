# backend/app/cli/seed_demo.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from app.auth import create_access_token
from app.db import SessionLocal
from app.models import (
    AppUser,
    LandlordProfile,
    Lease,
    LeaseStatus,
    LeaseTenant,
    LeaseType,
    Property,
    TenantProfile,
    Unit,
    UserRole,
)


@dataclass(frozen=True)
class SeedResult:
    landlord_user_id: int
    tenant_user_ids: list[int]
    property_id: int
    unit_id: int
    lease_id: int
    tokens: dict[str, str]


def _get_or_create_user(db: Session, email: str, name: str, role: str) -> AppUser:
    row = db.query(AppUser).filter(AppUser.email == email).one_or_none()
    if row:
        return row
    row = AppUser(email=email, name=name, role=role)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def _get_or_create_landlord(db: Session, user: AppUser, business_name: str) -> LandlordProfile:
    row = db.query(LandlordProfile).filter(LandlordProfile.user_id == user.id).one_or_none()
    if row:
        return row
    row = LandlordProfile(user_id=user.id, business_name=business_name)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def _get_or_create_tenant(db: Session, user: AppUser) -> TenantProfile:
    row = db.query(TenantProfile).filter(TenantProfile.user_id == user.id).one_or_none()
    if row:
        return row
    row = TenantProfile(user_id=user.id)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def seed_demo(
    *,
    landlord_email: str = "landlord@demo.local",
    tenant_emails: Optional[list[str]] = None,
    unit_number: str = "2B",
) -> SeedResult:
    tenant_emails = tenant_emails or ["tenant1@demo.local", "tenant2@demo.local"]

    db = SessionLocal()
    try:
        landlord_user = _get_or_create_user(db, landlord_email, "Demo Landlord", UserRole.LANDLORD)
        landlord = _get_or_create_landlord(db, landlord_user, "Demo Property Co")

        tenant_users = [
            _get_or_create_user(db, email, f"Demo Tenant {i + 1}", UserRole.TENANT)
            for i, email in enumerate(tenant_emails)
        ]
        tenants = [_get_or_create_tenant(db, u) for u in tenant_users]

        prop = db.query(Property).filter(Property.landlord_id == landlord.id).first()
        if not prop:
            prop = Property(
                landlord_id=landlord.id,
                name="Maple Court",
                address="55 Logic Ave",
                city="Detroit",
                state="MI",
                zip="48201",
            )
            db.add(prop)
            db.commit()
            db.refresh(prop)

        unit = db.query(Unit).filter(Unit.property_id == prop.id, Unit.unit_number == unit_number).one_or_none()
        if not unit:
            unit = Unit(property_id=prop.id, unit_number=unit_number, rent_amount=Decimal("1450.00"))
            db.add(unit)
            db.commit()
            db.refresh(unit)

        # a fresh draft every run; drafts never block each other
        now = datetime.utcnow()
        today = date.today()
        lease = Lease(
            unit_id=unit.id,
            type=LeaseType.FIXED_TERM,
            status=LeaseStatus.DRAFT,
            start_date=today,
            end_date=date(today.year + 1, today.month, 1),
            rent_amount=Decimal("1450.00"),
            deposit=Decimal("1450.00"),
            late_fee_amount=Decimal("50.00"),
            terms="Standard 12-month residential lease.",
            created_at=now,
            updated_at=now,
        )
        db.add(lease)
        db.flush()
        for i, t in enumerate(tenants):
            db.add(LeaseTenant(lease_id=lease.id, tenant_id=t.id, is_primary_tenant=(i == 0), created_at=now))
        db.commit()

        tokens = {landlord_user.email: create_access_token(user_id=landlord_user.id, role=landlord_user.role)}
        for u in tenant_users:
            tokens[u.email] = create_access_token(user_id=u.id, role=u.role)

        return SeedResult(
            landlord_user_id=int(landlord_user.id),
            tenant_user_ids=[int(u.id) for u in tenant_users],
            property_id=int(prop.id),
            unit_id=int(unit.id),
            lease_id=int(lease.id),
            tokens=tokens,
        )
    finally:
        db.close()
