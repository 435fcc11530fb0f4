# backend/tests/test_leases_api.py
from __future__ import annotations

import json

from sqlalchemy import func, select

from app.models import AuditEvent, Lease, LeaseStatus, Notification, NotificationType, Unit, UnitStatus

from conftest import headers_for


def _payload(world, **overrides):
    body = {
        "unit_id": world.unit_id,
        "tenant_ids": list(world.tenant_ids),
        "type": "FIXED_TERM",
        "start_date": "2027-01-01",
        "end_date": "2027-12-31",
        "rent_amount": "1500.00",
        "deposit": "1500.00",
    }
    body.update(overrides)
    return body


def test_landlord_creates_draft_lease(client, db, world):
    r = client.post("/api/leases", json=_payload(world), headers=headers_for(world.landlord_user_id))
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["status"] == LeaseStatus.DRAFT
    assert body["late_fee_days"] == 5
    assert body["rent_amount"] == 1500.0
    assert body["landlord"]["email"] == "landlord@t.local"
    assert [t["tenant_id"] for t in body["tenants"]] == list(world.tenant_ids)
    assert body["tenants"][0]["is_primary_tenant"] is True
    assert body["tenants"][1]["is_primary_tenant"] is False

    created = db.scalar(
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == world.tenant_user_ids[0], Notification.type == NotificationType.LEASE_CREATED)
    )
    assert created == 1


def test_create_lease_validation(client, world):
    h = headers_for(world.landlord_user_id)
    assert client.post("/api/leases", json=_payload(world, tenant_ids=[]), headers=h).status_code == 422
    assert client.post("/api/leases", json=_payload(world, rent_amount="0"), headers=h).status_code == 422
    assert client.post("/api/leases", json=_payload(world, end_date="2026-06-01"), headers=h).status_code == 422
    assert client.post("/api/leases", json=_payload(world, rent_due_day=32), headers=h).status_code == 422

    r = client.post("/api/leases", json=_payload(world, tenant_ids=[999]), headers=h)
    assert r.status_code == 422
    assert r.json()["error"] == "validation_failed"

    r = client.post("/api/leases", json=_payload(world, unit_id=999), headers=h)
    assert r.status_code == 404


def test_tenant_cannot_create_lease(client, world):
    r = client.post("/api/leases", json=_payload(world), headers=headers_for(world.tenant_user_ids[0]))
    assert r.status_code == 403


def test_overlap_with_pending_lease_is_blocked(client, world):
    h = headers_for(world.landlord_user_id)
    r = client.post(f"/api/leases/{world.lease_id}/send-for-signature", headers=h)
    assert r.status_code == 200, r.text
    assert r.json()["status"] == LeaseStatus.PENDING_SIGNATURE

    r = client.post("/api/leases", json=_payload(world, start_date="2026-06-01", end_date="2026-06-30"), headers=h)
    assert r.status_code == 409
    assert r.json()["error"] == "invalid_lease_state"

    # non-overlapping window on the same unit is fine
    r = client.post("/api/leases", json=_payload(world), headers=h)
    assert r.status_code == 201


def test_send_for_signature_notifies_tenants(client, db, world):
    r = client.post(f"/api/leases/{world.lease_id}/send-for-signature", headers=headers_for(world.landlord_user_id))
    assert r.status_code == 200
    for uid in world.tenant_user_ids:
        n = db.scalar(
            select(func.count())
            .select_from(Notification)
            .where(Notification.user_id == uid, Notification.type == NotificationType.LEASE_SIGNATURE_REQUESTED)
        )
        assert n == 1

    r = client.post(f"/api/leases/{world.lease_id}/send-for-signature", headers=headers_for(world.landlord_user_id))
    assert r.status_code == 409


def test_list_and_get_are_scoped(client, world):
    assert [x["id"] for x in client.get("/api/leases", headers=headers_for(world.landlord_user_id)).json()] == [
        world.lease_id
    ]
    assert [x["id"] for x in client.get("/api/leases", headers=headers_for(world.tenant_user_ids[1])).json()] == [
        world.lease_id
    ]
    assert client.get("/api/leases", headers=headers_for(world.outsider_user_id)).json() == []
    assert len(client.get("/api/leases", headers=headers_for(world.admin_user_id)).json()) == 1
    assert client.get("/api/leases?status=ACTIVE", headers=headers_for(world.admin_user_id)).json() == []

    assert client.get(f"/api/leases/{world.lease_id}", headers=headers_for(world.tenant_user_ids[0])).status_code == 200
    assert client.get(f"/api/leases/{world.lease_id}", headers=headers_for(world.outsider_user_id)).status_code == 403


def test_terminate_frees_the_unit(client, db, world):
    for uid in [world.landlord_user_id, *world.tenant_user_ids]:
        client.post(
            f"/api/lease-signing/{world.lease_id}/sign",
            json={"agreed_to_terms": True, "signature": "x"},
            headers=headers_for(uid),
        )
    db.expire_all()
    assert db.get(Unit, world.unit_id).status == UnitStatus.OCCUPIED

    h = headers_for(world.landlord_user_id)
    r = client.post(f"/api/leases/{world.lease_id}/terminate", json={"termination_date": "2026-06-30", "reason": "short"}, headers=h)
    assert r.status_code == 422

    r = client.post(
        f"/api/leases/{world.lease_id}/terminate",
        json={"termination_date": "2026-06-30", "reason": "Tenant relocated for work"},
        headers=h,
    )
    assert r.status_code == 200, r.text
    assert r.json()["status"] == LeaseStatus.TERMINATED
    assert r.json()["end_date"] == "2026-06-30"
    assert r.json()["notes"] == "Tenant relocated for work"

    db.expire_all()
    assert db.get(Unit, world.unit_id).status == UnitStatus.VACANT
    n = db.scalar(
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == world.tenant_user_ids[0], Notification.type == NotificationType.LEASE_TERMINATED)
    )
    assert n == 1

    r = client.post(
        f"/api/leases/{world.lease_id}/terminate",
        json={"termination_date": "2026-06-30", "reason": "Tenant relocated for work"},
        headers=headers_for(world.tenant_user_ids[0]),
    )
    assert r.status_code == 403


def test_delete_only_drafts(client, db, world):
    h = headers_for(world.landlord_user_id)
    assert client.delete(f"/api/leases/{world.lease_id}", headers=headers_for(world.tenant_user_ids[0])).status_code == 403

    r = client.delete(f"/api/leases/{world.lease_id}", headers=h)
    assert r.status_code == 200
    db.expire_all()
    assert db.get(Lease, world.lease_id).deleted_at is not None
    assert client.get(f"/api/leases/{world.lease_id}", headers=h).status_code == 404

    r = client.post("/api/leases", json=_payload(world), headers=h)
    new_id = r.json()["id"]
    client.post(f"/api/leases/{new_id}/send-for-signature", headers=h)
    assert client.delete(f"/api/leases/{new_id}", headers=h).status_code == 409


def test_terminating_an_unsigned_future_lease_keeps_the_unit_occupied(client, db, world):
    for uid in [world.landlord_user_id, *world.tenant_user_ids]:
        client.post(
            f"/api/lease-signing/{world.lease_id}/sign",
            json={"agreed_to_terms": True, "signature": "x"},
            headers=headers_for(uid),
        )
    h = headers_for(world.landlord_user_id)
    r = client.post("/api/leases", json=_payload(world), headers=h)
    assert r.status_code == 201, r.text
    future_id = r.json()["id"]

    r = client.post(
        f"/api/leases/{future_id}/terminate",
        json={"termination_date": "2027-01-15", "reason": "Tenant chose another unit"},
        headers=h,
    )
    assert r.status_code == 200, r.text
    assert r.json()["status"] == LeaseStatus.TERMINATED

    db.expire_all()
    assert db.get(Unit, world.unit_id).status == UnitStatus.OCCUPIED
    assert db.get(Lease, world.lease_id).status == LeaseStatus.ACTIVE


def test_landlord_edits_unsigned_draft(client, db, world):
    h = headers_for(world.landlord_user_id)
    r = client.patch(
        f"/api/leases/{world.lease_id}",
        json={"rent_amount": "1525.00", "rent_due_day": 5, "terms": "No smoking."},
        headers=h,
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["rent_amount"] == 1525.0
    assert body["rent_due_day"] == 5
    assert body["terms"] == "No smoking."
    assert body["deposit"] == 1450.0
    assert body["status"] == LeaseStatus.DRAFT

    row = db.scalar(select(AuditEvent).where(AuditEvent.action == "lease.update"))
    after = json.loads(row.after_json)
    assert after["updated_fields"] == ["rent_amount", "rent_due_day", "terms"]
    assert json.loads(row.before_json)["rent_amount"] == "1450.00"

    r = client.patch(f"/api/leases/{world.lease_id}", json={"notes": "admin note"}, headers=headers_for(world.admin_user_id))
    assert r.status_code == 200
    assert r.json()["notes"] == "admin note"


def test_lease_edit_rules(client, world):
    h = headers_for(world.landlord_user_id)
    url = f"/api/leases/{world.lease_id}"

    assert client.patch(url, json={"terms": "x"}, headers=headers_for(world.tenant_user_ids[0])).status_code == 403
    assert client.patch(url, json={"rent_amount": None}, headers=h).status_code == 422
    assert client.patch(url, json={"rent_amount": "0"}, headers=h).status_code == 422

    r = client.patch(url, json={}, headers=h)
    assert r.status_code == 422
    assert r.json()["error"] == "validation_failed"

    client.post(f"/api/lease-signing/{world.lease_id}/sign", json={"agreed_to_terms": True, "signature": "x"}, headers=h)
    r = client.patch(url, json={"rent_amount": "1600.00"}, headers=h)
    assert r.status_code == 409
    assert r.json()["error"] == "invalid_lease_state"
