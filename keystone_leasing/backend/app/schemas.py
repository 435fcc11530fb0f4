# backend/app/schemas.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional, List

from pydantic import BaseModel, Field, ConfigDict, model_validator

from .models import LeaseType


# -------------------- Parties --------------------

class UserSummaryOut(BaseModel):
    id: int
    name: Optional[str] = None
    email: str
    phone: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class LeaseTenantOut(BaseModel):
    id: int
    tenant_id: int
    user: UserSummaryOut
    is_primary_tenant: bool
    signed_at: Optional[datetime] = None


class UnitSummaryOut(BaseModel):
    id: int
    unit_number: str
    status: str
    property_id: int
    property_name: str
    address: str
    city: str
    state: str


# -------------------- Leases --------------------

class LeaseCreate(BaseModel):
    unit_id: int
    tenant_ids: List[int] = Field(min_length=1)
    type: str = LeaseType.FIXED_TERM
    start_date: date
    end_date: Optional[date] = None
    rent_amount: Decimal = Field(gt=0)
    deposit: Decimal = Field(gt=0)
    late_fee_amount: Optional[Decimal] = Field(default=None, ge=0)
    late_fee_days: int = Field(default=5, ge=0)
    rent_due_day: int = Field(default=1, ge=1, le=31)
    terms: Optional[str] = None

    @model_validator(mode="after")
    def _check(self) -> "LeaseCreate":
        if self.type not in LeaseType.ALL:
            raise ValueError(f"type must be one of {list(LeaseType.ALL)}")
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date cannot be before start_date")
        if len(set(self.tenant_ids)) != len(self.tenant_ids):
            raise ValueError("tenant_ids must be unique")
        return self


class LeaseUpdate(BaseModel):
    """Partial edit of an unsigned lease; only fields present in the body are written."""

    rent_amount: Optional[Decimal] = Field(default=None, gt=0)
    deposit: Optional[Decimal] = Field(default=None, gt=0)
    late_fee_amount: Optional[Decimal] = Field(default=None, ge=0)
    late_fee_days: Optional[int] = Field(default=None, ge=0)
    rent_due_day: Optional[int] = Field(default=None, ge=1, le=31)
    terms: Optional[str] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _check(self) -> "LeaseUpdate":
        for name in ("rent_amount", "deposit", "late_fee_days", "rent_due_day"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class LeaseTerminateIn(BaseModel):
    termination_date: date
    reason: str = Field(min_length=10)


class LeaseOut(BaseModel):
    id: int
    unit_id: int
    type: str
    status: str
    start_date: date
    end_date: Optional[date] = None

    rent_amount: float
    deposit: float
    late_fee_amount: Optional[float] = None
    late_fee_days: int
    rent_due_day: int

    terms: Optional[str] = None
    notes: Optional[str] = None

    landlord_signed_at: Optional[datetime] = None
    all_tenants_signed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    unit: UnitSummaryOut
    landlord: UserSummaryOut
    tenants: List[LeaseTenantOut]


# -------------------- Signing --------------------

class SigningProgressOut(BaseModel):
    total_needed: int
    total_signed: int
    percentage: int
    is_fully_signed: bool
    landlord_signed: bool
    tenants_signed_count: int


class UserSigningStatusOut(BaseModel):
    role: str
    can_sign: bool
    has_signed: bool
    signed_at: Optional[datetime] = None


class LeaseSigningViewOut(BaseModel):
    lease: LeaseOut
    user_signing_status: UserSigningStatusOut
    signing_progress: SigningProgressOut


class SignLeaseIn(BaseModel):
    agreed_to_terms: bool
    # typed full name or a data-url of the drawn signature; the activity log keeps its sha256
    signature: str = Field(min_length=1, max_length=200_000)


class SignLeaseOut(BaseModel):
    lease: LeaseOut
    signing_progress: SigningProgressOut
    already_signed: bool
    activated: bool
    message: str


class ResendInvitationOut(BaseModel):
    reminders_sent: int
    message: str


# -------------------- Notifications --------------------

class NotificationOut(BaseModel):
    id: int
    type: str
    channel: str
    title: str
    message: str
    action_url: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime


class PaginationOut(BaseModel):
    total: int
    limit: int
    offset: int
    has_more: bool


class NotificationPageOut(BaseModel):
    notifications: List[NotificationOut]
    pagination: PaginationOut
    unread_count: int


class UnreadCountOut(BaseModel):
    unread_count: int


class NotificationPreferenceIn(BaseModel):
    in_app_enabled: bool = True
    email_enabled: bool = True
    muted_types: List[str] = Field(default_factory=list)


class NotificationPreferenceOut(NotificationPreferenceIn):
    user_id: int
