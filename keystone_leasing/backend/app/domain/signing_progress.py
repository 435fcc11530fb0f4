# backend/app/domain/signing_progress.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional


@dataclass(frozen=True)
class SigningProgress:
    total_needed: int
    total_signed: int
    percentage: int
    is_fully_signed: bool
    landlord_signed: bool
    tenants_signed_count: int


def _round_half_up_pct(part: int, whole: int) -> int:
    # integer half-up: 2/3 -> 67, 1/8 -> 13
    return (200 * part + whole) // (2 * whole)


def compute_signing_progress(
    landlord_signed_at: Optional[datetime],
    tenant_signed_ats: Iterable[Optional[datetime]],
) -> SigningProgress:
    """
    One landlord signature plus one per LeaseTenant.

    Derived on read, never persisted.
    """
    tenant_signed_ats = list(tenant_signed_ats)
    landlord_signed = landlord_signed_at is not None
    tenants_signed = sum(1 for s in tenant_signed_ats if s is not None)

    total_needed = 1 + len(tenant_signed_ats)
    total_signed = (1 if landlord_signed else 0) + tenants_signed

    return SigningProgress(
        total_needed=total_needed,
        total_signed=total_signed,
        percentage=_round_half_up_pct(total_signed, total_needed),
        is_fully_signed=total_signed == total_needed,
        landlord_signed=landlord_signed,
        tenants_signed_count=tenants_signed,
    )


def progress_for_lease(lease) -> SigningProgress:
    return compute_signing_progress(lease.landlord_signed_at, [lt.signed_at for lt in lease.tenants])
