# backend/app/serializers.py
"""
Projections from ORM rows to the DTOs in schemas.py.

Every entity that crosses the API boundary goes through exactly one function
here, so Decimal -> float and date/datetime -> ISO handling lives in one place
(the pydantic models declare float/datetime fields and do the conversion).
"""
from __future__ import annotations

import json

from .domain.signing_progress import SigningProgress
from .models import AppUser, Lease, LeaseTenant, Notification, NotificationPreference
from .schemas import (
    LeaseOut,
    LeaseTenantOut,
    NotificationOut,
    NotificationPreferenceOut,
    SigningProgressOut,
    UnitSummaryOut,
    UserSummaryOut,
)


def user_to_dto(user: AppUser) -> UserSummaryOut:
    return UserSummaryOut.model_validate(user)


def lease_tenant_to_dto(lt: LeaseTenant) -> LeaseTenantOut:
    return LeaseTenantOut(
        id=lt.id,
        tenant_id=lt.tenant_id,
        user=user_to_dto(lt.tenant.user),
        is_primary_tenant=bool(lt.is_primary_tenant),
        signed_at=lt.signed_at,
    )


def lease_to_dto(lease: Lease) -> LeaseOut:
    """Expects the aggregate loaded by services.ownership.load_lease (unit, property, parties)."""
    unit = lease.unit
    prop = unit.property
    return LeaseOut(
        id=lease.id,
        unit_id=lease.unit_id,
        type=lease.type,
        status=lease.status,
        start_date=lease.start_date,
        end_date=lease.end_date,
        rent_amount=lease.rent_amount,
        deposit=lease.deposit,
        late_fee_amount=lease.late_fee_amount,
        late_fee_days=lease.late_fee_days,
        rent_due_day=lease.rent_due_day,
        terms=lease.terms,
        notes=lease.notes,
        landlord_signed_at=lease.landlord_signed_at,
        all_tenants_signed_at=lease.all_tenants_signed_at,
        created_at=lease.created_at,
        updated_at=lease.updated_at,
        unit=UnitSummaryOut(
            id=unit.id,
            unit_number=unit.unit_number,
            status=unit.status,
            property_id=prop.id,
            property_name=prop.name,
            address=prop.address,
            city=prop.city,
            state=prop.state,
        ),
        landlord=user_to_dto(prop.landlord.user),
        tenants=[lease_tenant_to_dto(lt) for lt in lease.tenants],
    )


def signing_progress_to_dto(progress: SigningProgress) -> SigningProgressOut:
    return SigningProgressOut(
        total_needed=progress.total_needed,
        total_signed=progress.total_signed,
        percentage=progress.percentage,
        is_fully_signed=progress.is_fully_signed,
        landlord_signed=progress.landlord_signed,
        tenants_signed_count=progress.tenants_signed_count,
    )


def _loads_dict(s: str | None) -> dict:
    if not s:
        return {}
    try:
        x = json.loads(s)
    except ValueError:
        return {}
    return x if isinstance(x, dict) else {}


def notification_to_dto(row: Notification) -> NotificationOut:
    return NotificationOut(
        id=row.id,
        type=row.type,
        channel=row.channel,
        title=row.title,
        message=row.message,
        action_url=row.action_url,
        metadata=_loads_dict(row.metadata_json),
        is_read=bool(row.is_read),
        read_at=row.read_at,
        created_at=row.created_at,
    )


def notification_preference_to_dto(pref: NotificationPreference) -> NotificationPreferenceOut:
    try:
        muted = json.loads(pref.muted_types_json or "[]")
    except ValueError:
        muted = []
    return NotificationPreferenceOut(
        user_id=pref.user_id,
        in_app_enabled=bool(pref.in_app_enabled),
        email_enabled=bool(pref.email_enabled),
        muted_types=[str(t) for t in muted] if isinstance(muted, list) else [],
    )
