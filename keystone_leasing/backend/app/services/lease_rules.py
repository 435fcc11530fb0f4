# backend/app/services/lease_rules.py
from __future__ import annotations

from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..errors import InvalidLeaseState, ValidationFailed
from ..models import Lease, LeaseStatus


def _overlaps(a_start: date, a_end: Optional[date], b_start: date, b_end: Optional[date]) -> bool:
    """
    Overlap rule:
    - Treat end dates as inclusive.
    - If end is None, treat it as open-ended.
    """
    a_end_eff = a_end or date.max
    b_end_eff = b_end or date.max
    return not (a_end_eff < b_start or b_end_eff < a_start)


def ensure_no_lease_overlap(
    db: Session,
    *,
    unit_id: int,
    start_date: date,
    end_date: Optional[date] = None,
    ignore_lease_id: Optional[int] = None,
) -> None:
    """
    Raise InvalidLeaseState if the unit already has an occupying lease
    (ACTIVE or PENDING_SIGNATURE) whose dates overlap [start_date, end_date].

    DRAFT leases never block: several drafts may compete for one unit until
    one of them goes out for signature.
    """
    if end_date is not None and end_date < start_date:
        raise ValidationFailed("lease end_date cannot be before start_date")

    q = select(Lease).where(
        Lease.unit_id == int(unit_id),
        Lease.deleted_at.is_(None),
        Lease.status.in_(LeaseStatus.OCCUPYING),
    )
    if ignore_lease_id is not None:
        q = q.where(Lease.id != int(ignore_lease_id))

    for r in db.scalars(q.order_by(Lease.id.desc())).all():
        if _overlaps(start_date, end_date, r.start_date, r.end_date):
            raise InvalidLeaseState(
                f"lease dates overlap with existing lease id={int(r.id)} "
                f"({r.start_date.isoformat()} -> {(r.end_date.isoformat() if r.end_date else 'open-ended')})"
            )
