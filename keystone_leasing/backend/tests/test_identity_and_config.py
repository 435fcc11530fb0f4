# backend/tests/test_identity_and_config.py
from __future__ import annotations

import pytest

from app.auth import create_access_token
from app.config import Settings, settings
from app.models import AppUser, UserStatus

from conftest import headers_for


def test_bearer_token_identifies_user(client, world):
    token = create_access_token(user_id=world.landlord_user_id, role="LANDLORD")
    r = client.get("/api/leases", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200
    assert [x["id"] for x in r.json()] == [world.lease_id]


def test_role_comes_from_user_record_not_token(client, world):
    # a tenant minting a LANDLORD claim still acts as a tenant
    token = create_access_token(user_id=world.outsider_user_id, role="LANDLORD")
    r = client.get("/api/leases", headers={"Authorization": f"Bearer {token}"})
    assert r.json() == []


def test_bad_and_expired_tokens(client, world):
    r = client.get("/api/leases", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401
    assert r.json()["detail"] == "Invalid token"

    expired = create_access_token(user_id=world.landlord_user_id, role="LANDLORD", minutes=-5)
    r = client.get("/api/leases", headers={"Authorization": f"Bearer {expired}"})
    assert r.status_code == 401
    assert r.json()["detail"] == "Token expired"


def test_dev_header_rules(client, world):
    assert client.get("/api/leases", headers={"X-User-Id": "abc"}).status_code == 401
    assert client.get("/api/leases", headers={"X-User-Id": "424242"}).status_code == 401
    assert client.get("/api/leases").status_code == 401


def test_dev_header_disabled_outside_dev_mode(monkeypatch, client, world):
    monkeypatch.setattr(settings, "auth_mode", "jwt")
    assert client.get("/api/leases", headers=headers_for(world.landlord_user_id)).status_code == 401


def test_suspended_user_is_rejected(client, db, world):
    u = db.get(AppUser, world.tenant_user_ids[0])
    u.status = UserStatus.SUSPENDED
    db.commit()
    r = client.get("/api/leases", headers=headers_for(u.id))
    assert r.status_code == 403


def test_health_and_request_id(client):
    r = client.get("/api/health", headers={"X-Request-ID": "abc-123"})
    assert r.status_code == 200
    assert r.json()["ok"] is True
    assert r.headers["X-Request-ID"] == "abc-123"
    assert client.get("/api/health").headers["X-Request-ID"]


def test_unsafe_request_id_is_replaced(client):
    r = client.get("/api/health", headers={"X-Request-ID": "bad id {with} spaces"})
    assert r.status_code == 200
    rid = r.headers["X-Request-ID"]
    assert rid != "bad id {with} spaces"
    assert len(rid) == 32

    assert client.get("/api/health", headers={"X-Request-ID": "x" * 65}).headers["X-Request-ID"] != "x" * 65


@pytest.mark.parametrize(
    "overrides",
    [
        {"auth_mode": "dev", "jwt_secret": "s3cret", "cors_allow_origins": ["https://app.example.com"]},
        {"auth_mode": "jwt", "jwt_secret": "dev-change-me", "cors_allow_origins": ["https://app.example.com"]},
        {"auth_mode": "jwt", "jwt_secret": "s3cret", "cors_allow_origins": ["*"]},
    ],
)
def test_prod_guards(overrides):
    with pytest.raises(ValueError):
        Settings(app_env="prod", _env_file=None, **overrides)


def test_prod_settings_accepted_when_locked_down():
    s = Settings(
        app_env="prod",
        auth_mode="jwt",
        jwt_secret="s3cret",
        cors_allow_origins=["https://app.example.com"],
        _env_file=None,
    )
    assert s.auth_mode == "jwt"
