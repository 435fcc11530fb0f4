# backend/app/domain/audit.py
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Mapping, Optional

from sqlalchemy.orm import Session

from ..models import AuditEvent


def _snapshot_json(snapshot: Optional[Mapping[str, Any]]) -> Optional[str]:
    # dates and Decimals are stored via str()
    return None if snapshot is None else json.dumps(dict(snapshot), sort_keys=True, default=str)


def audit_write(
    db: Session,
    *,
    actor_user_id: Optional[int],
    action: str,
    entity_type: str,
    entity_id: Any,
    before: Optional[Mapping[str, Any]] = None,
    after: Optional[Mapping[str, Any]] = None,
) -> AuditEvent:
    """Stage an activity-log row in the caller's session; the caller commits."""
    event = AuditEvent(
        actor_user_id=actor_user_id,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        before_json=_snapshot_json(before),
        after_json=_snapshot_json(after),
        created_at=datetime.utcnow(),
    )
    db.add(event)
    return event
