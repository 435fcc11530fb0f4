# backend/tests/conftest.py
from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Iterator

# before any app import: settings are read once at import time
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("AUTH_MODE", "dev")
os.environ.setdefault("EMAIL_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app import db as app_db
from app.db import Base, SessionLocal, make_engine
from app.main import app
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
class World:
    landlord_user_id: int
    landlord_id: int
    tenant_user_ids: list[int]
    tenant_ids: list[int]
    outsider_user_id: int
    admin_user_id: int
    property_id: int
    unit_id: int
    lease_id: int


def headers_for(user_id: int) -> dict[str, str]:
    return {"X-User-Id": str(user_id)}


@pytest.fixture()
def engine(tmp_path):
    eng = make_engine(f"sqlite:///{tmp_path / 'keystone_test.db'}")
    Base.metadata.create_all(bind=eng)
    SessionLocal.configure(bind=eng)
    yield eng
    SessionLocal.configure(bind=app_db.engine)
    eng.dispose()


@pytest.fixture()
def db(engine) -> Iterator[Session]:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def _user(db: Session, email: str, name: str, role: str) -> AppUser:
    u = AppUser(email=email, name=name, role=role, created_at=datetime.utcnow())
    db.add(u)
    db.flush()
    return u


def make_lease(
    db: Session,
    *,
    unit_id: int,
    tenant_ids: list[int],
    status: str = LeaseStatus.DRAFT,
    start_date: date = date(2026, 1, 1),
    end_date: date | None = date(2026, 12, 31),
) -> Lease:
    now = datetime.utcnow()
    lease = Lease(
        unit_id=unit_id,
        type=LeaseType.FIXED_TERM,
        status=status,
        start_date=start_date,
        end_date=end_date,
        rent_amount=Decimal("1450.00"),
        deposit=Decimal("1450.00"),
        created_at=now,
        updated_at=now,
    )
    db.add(lease)
    db.flush()
    for i, tid in enumerate(tenant_ids):
        db.add(LeaseTenant(lease_id=lease.id, tenant_id=tid, is_primary_tenant=(i == 0), created_at=now))
    db.commit()
    return lease


@pytest.fixture()
def world(db: Session) -> World:
    """Landlord with one unit, two tenants on a DRAFT lease, plus an outsider tenant and an admin."""
    landlord_user = _user(db, "landlord@t.local", "Lana Landlord", UserRole.LANDLORD)
    landlord = LandlordProfile(user_id=landlord_user.id, business_name="Maple Co")
    db.add(landlord)
    db.flush()

    tenant_users = [
        _user(db, "t1@t.local", "Tina One", UserRole.TENANT),
        _user(db, "t2@t.local", "Theo Two", UserRole.TENANT),
    ]
    tenants = [TenantProfile(user_id=u.id) for u in tenant_users]
    db.add_all(tenants)

    outsider = _user(db, "outsider@t.local", "Olive Outsider", UserRole.TENANT)
    db.add(TenantProfile(user_id=outsider.id))
    admin = _user(db, "admin@t.local", "Ada Admin", UserRole.ADMIN)

    prop = Property(
        landlord_id=landlord.id,
        name="Maple Court",
        address="55 Logic Ave",
        city="Detroit",
        state="MI",
        zip="48201",
    )
    db.add(prop)
    db.flush()
    unit = Unit(property_id=prop.id, unit_number="2B", rent_amount=Decimal("1450.00"))
    db.add(unit)
    db.commit()

    lease = make_lease(db, unit_id=unit.id, tenant_ids=[t.id for t in tenants])

    return World(
        landlord_user_id=landlord_user.id,
        landlord_id=landlord.id,
        tenant_user_ids=[u.id for u in tenant_users],
        tenant_ids=[t.id for t in tenants],
        outsider_user_id=outsider.id,
        admin_user_id=admin.id,
        property_id=prop.id,
        unit_id=unit.id,
        lease_id=lease.id,
    )


@pytest.fixture()
def client(engine) -> Iterator[TestClient]:
    with TestClient(app) as c:
        yield c
