# backend/tests/test_lease_signing_flow.py
from __future__ import annotations

import hashlib
import json
from datetime import date

from sqlalchemy import func, select

from app.auth import RequestContext
from app.models import AuditEvent, Lease, LeaseStatus, LeaseTenant, Notification, NotificationType, Unit, UnitStatus, UserRole
from app.services import lease_signing
from app.services import notifications as notification_service

from conftest import headers_for, make_lease


def _sign(client, lease_id: int, user_id: int, **body):
    payload = {"agreed_to_terms": True, "signature": "Signed Name"}
    payload.update(body)
    return client.post(f"/api/lease-signing/{lease_id}/sign", json=payload, headers=headers_for(user_id))


def _count(db, user_id: int, type_: str) -> int:
    return int(
        db.scalar(
            select(func.count())
            .select_from(Notification)
            .where(Notification.user_id == user_id, Notification.type == type_)
        )
    )


def test_full_signing_scenario_activates_once(client, db, world):
    r = _sign(client, world.lease_id, world.landlord_user_id)
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["lease"]["status"] == LeaseStatus.PENDING_SIGNATURE
    assert body["signing_progress"]["percentage"] == 33
    assert body["signing_progress"]["landlord_signed"] is True
    assert body["activated"] is False
    assert body["already_signed"] is False
    assert body["message"] == "Lease signed successfully. Waiting for other signatures."

    for uid in world.tenant_user_ids:
        assert _count(db, uid, NotificationType.LEASE_SIGNED) == 1

    r = _sign(client, world.lease_id, world.tenant_user_ids[0])
    assert r.status_code == 200, r.text
    assert r.json()["signing_progress"]["percentage"] == 67
    assert r.json()["lease"]["status"] == LeaseStatus.PENDING_SIGNATURE
    assert _count(db, world.landlord_user_id, NotificationType.LEASE_SIGNED) == 1

    r = _sign(client, world.lease_id, world.tenant_user_ids[1])
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["activated"] is True
    assert body["lease"]["status"] == LeaseStatus.ACTIVE
    assert body["signing_progress"]["percentage"] == 100
    assert body["signing_progress"]["is_fully_signed"] is True
    assert body["message"] == "Lease signed successfully! The lease is now active."

    db.expire_all()
    lease = db.get(Lease, world.lease_id)
    assert lease.status == LeaseStatus.ACTIVE
    assert lease.all_tenants_signed_at is not None
    for lt in lease.tenants:
        assert lt.signed_at is not None
        assert lease.all_tenants_signed_at >= lt.signed_at
    assert lease.all_tenants_signed_at >= lease.landlord_signed_at
    assert db.get(Unit, world.unit_id).status == UnitStatus.OCCUPIED

    assert _count(db, world.landlord_user_id, NotificationType.LEASE_ACTIVATED) == 1
    for uid in world.tenant_user_ids:
        assert _count(db, uid, NotificationType.LEASE_ACTIVATED) == 1

    actions = db.scalars(
        select(AuditEvent.action).where(AuditEvent.entity_type == "Lease", AuditEvent.entity_id == str(world.lease_id))
    ).all()
    assert actions.count("lease.signed") == 3
    assert actions.count("lease.activated") == 1


def test_tenant_signing_first_moves_draft_to_pending(client, db, world):
    r = _sign(client, world.lease_id, world.tenant_user_ids[0])
    assert r.status_code == 200, r.text
    assert r.json()["lease"]["status"] == LeaseStatus.PENDING_SIGNATURE
    assert r.json()["signing_progress"]["tenants_signed_count"] == 1

    db.expire_all()
    lt = db.scalar(select(LeaseTenant).where(LeaseTenant.tenant_id == world.tenant_ids[0]))
    assert lt.signed_at is not None
    assert lt.signature_ip == "testclient"


def test_signing_twice_is_a_no_op(client, db, world):
    assert _sign(client, world.lease_id, world.landlord_user_id).status_code == 200
    db.expire_all()
    first = db.get(Lease, world.lease_id).landlord_signed_at
    before = _count(db, world.tenant_user_ids[0], NotificationType.LEASE_SIGNED)

    r = _sign(client, world.lease_id, world.landlord_user_id)
    assert r.status_code == 200, r.text
    assert r.json()["already_signed"] is True
    assert r.json()["message"] == "You have already signed this lease."

    db.expire_all()
    assert db.get(Lease, world.lease_id).landlord_signed_at == first
    assert _count(db, world.tenant_user_ids[0], NotificationType.LEASE_SIGNED) == before


def test_resigning_an_active_lease_is_a_no_op(client, db, world):
    for uid in [world.landlord_user_id, *world.tenant_user_ids]:
        assert _sign(client, world.lease_id, uid).status_code == 200

    r = _sign(client, world.lease_id, world.tenant_user_ids[0])
    assert r.status_code == 200, r.text
    assert r.json()["already_signed"] is True
    assert r.json()["activated"] is False
    assert _count(db, world.landlord_user_id, NotificationType.LEASE_ACTIVATED) == 1


def test_non_party_cannot_sign_and_lease_is_untouched(client, db, world):
    for uid in (world.outsider_user_id, world.admin_user_id):
        r = _sign(client, world.lease_id, uid)
        assert r.status_code == 403
        assert r.json()["error"] == "unauthorized"

    db.expire_all()
    lease = db.get(Lease, world.lease_id)
    assert lease.status == LeaseStatus.DRAFT
    assert lease.landlord_signed_at is None
    assert all(lt.signed_at is None for lt in lease.tenants)
    assert db.scalar(select(func.count()).select_from(AuditEvent)) == 0


def test_terms_must_be_agreed(client, world):
    r = _sign(client, world.lease_id, world.landlord_user_id, agreed_to_terms=False)
    assert r.status_code == 422
    assert r.json()["error"] == "validation_failed"


def test_missing_lease_is_404(client, world):
    r = _sign(client, 999999, world.landlord_user_id)
    assert r.status_code == 404
    assert r.json()["error"] == "not_found"


def test_terminated_lease_cannot_be_signed(client, db, world):
    lease = db.get(Lease, world.lease_id)
    lease.status = LeaseStatus.TERMINATED
    db.commit()

    r = _sign(client, world.lease_id, world.landlord_user_id)
    assert r.status_code == 409
    assert r.json()["error"] == "invalid_lease_state"


def test_sign_requires_identity(client, world):
    r = client.post(f"/api/lease-signing/{world.lease_id}/sign", json={"agreed_to_terms": True, "signature": "x"})
    assert r.status_code == 401
    assert r.json()["error"] == "not_authenticated"


def test_activity_log_keeps_signature_digest_only(client, db, world):
    assert _sign(client, world.lease_id, world.landlord_user_id, signature="data:image/png;base64,AAAA").status_code == 200

    row = db.scalar(select(AuditEvent).where(AuditEvent.action == "lease.signed"))
    after = json.loads(row.after_json)
    assert after["role"] == "LANDLORD"
    assert after["ip_address"] == "testclient"
    assert after["signature_sha256"] == hashlib.sha256(b"data:image/png;base64,AAAA").hexdigest()
    assert "base64" not in row.after_json


def test_overlapping_draft_cannot_be_signed_once_another_lease_is_active(client, db, world):
    rival_id = make_lease(db, unit_id=world.unit_id, tenant_ids=list(world.tenant_ids)).id
    for uid in [world.landlord_user_id, *world.tenant_user_ids]:
        assert _sign(client, world.lease_id, uid).status_code == 200

    for uid in [world.landlord_user_id, *world.tenant_user_ids]:
        r = _sign(client, rival_id, uid)
        assert r.status_code == 409
        assert r.json()["error"] == "invalid_lease_state"

    db.expire_all()
    rival = db.get(Lease, rival_id)
    assert rival.status == LeaseStatus.DRAFT
    assert rival.landlord_signed_at is None
    assert all(lt.signed_at is None for lt in rival.tenants)
    active = db.scalar(
        select(func.count()).select_from(Lease).where(Lease.unit_id == world.unit_id, Lease.status == LeaseStatus.ACTIVE)
    )
    assert active == 1


def test_later_draft_on_same_unit_can_still_be_signed(client, db, world):
    later_id = make_lease(
        db,
        unit_id=world.unit_id,
        tenant_ids=[world.tenant_ids[0]],
        start_date=date(2027, 1, 1),
        end_date=date(2027, 12, 31),
    ).id
    assert _sign(client, world.lease_id, world.landlord_user_id).status_code == 200

    r = _sign(client, later_id, world.landlord_user_id)
    assert r.status_code == 200, r.text
    assert r.json()["lease"]["status"] == LeaseStatus.PENDING_SIGNATURE


def test_failed_notifications_do_not_undo_signatures(monkeypatch, db, world):
    def broken_dispatch(db, req):
        raise RuntimeError("notification store unavailable")

    monkeypatch.setattr(notification_service, "dispatch", broken_dispatch)

    landlord = RequestContext(user_id=world.landlord_user_id, role=UserRole.LANDLORD)
    outcome = lease_signing.sign_lease(db, landlord, world.lease_id, agreed_to_terms=True, signature="L")
    assert outcome.already_signed is False

    for uid in world.tenant_user_ids:
        tenant = RequestContext(user_id=uid, role=UserRole.TENANT)
        outcome = lease_signing.sign_lease(db, tenant, world.lease_id, agreed_to_terms=True, signature="T")
        assert outcome.already_signed is False
    assert outcome.activated is True

    db.expire_all()
    lease = db.get(Lease, world.lease_id)
    assert lease.landlord_signed_at is not None
    assert all(lt.signed_at is not None for lt in lease.tenants)
    assert lease.status == LeaseStatus.ACTIVE
    assert db.scalar(select(func.count()).select_from(Notification)) == 0
