from __future__ import annotations

import jwt
import pytest
from fastapi.testclient import TestClient

from backoffice.config import settings
from backoffice.domain.approval_plan import Role
from backoffice.main import create_app
from backoffice.services.auth_service import (
    create_access_token,
    decode_access_token,
    get_or_create_user,
)


def test_token_round_trip_claims():
    tok = create_access_token(user_id=7, role="vp", minutes=5)
    claims = decode_access_token(tok)
    assert claims["uid"] == 7
    assert claims["sub"] == "7"
    assert claims["role"] == "vp"


def test_expired_token_is_rejected():
    tok = create_access_token(user_id=7, role="vp", minutes=-5)
    with pytest.raises(jwt.ExpiredSignatureError):
        decode_access_token(tok)


def test_get_or_create_user_is_idempotent(db):
    a = get_or_create_user(db, " New.Person@T.local ", role="manager", branch_id=None)
    b = get_or_create_user(db, "new.person@t.local", role="agent")
    assert a.id == b.id
    assert b.role == "manager"
    assert b.first_name == "new.person"


def test_bearer_token_uses_stored_role(db, mk):
    user = mk.user(Role.DIRECTOR, email="boss@t.local")
    client = TestClient(create_app())

    tok = create_access_token(user_id=user.id, role=user.role)
    r = client.get("/api/approvals/me", headers={"Authorization": f"Bearer {tok}"})
    assert r.status_code == 200, r.text
    assert r.json()["role"] == "director"
    assert r.json()["user_id"] == user.id


def test_bad_tokens_are_401(mk):
    client = TestClient(create_app())

    r = client.get("/api/approvals/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401

    forged = jwt.encode({"uid": 1, "role": "admin"}, "other-secret", algorithm="HS256")
    r = client.get("/api/approvals/me", headers={"Authorization": f"Bearer {forged}"})
    assert r.status_code == 401

    unknown = create_access_token(user_id=99999, role="admin")
    r = client.get("/api/approvals/me", headers={"Authorization": f"Bearer {unknown}"})
    assert r.status_code == 401


def test_dev_headers_disabled_outside_dev_mode(monkeypatch):
    monkeypatch.setattr(settings, "auth_mode", "jwt")
    client = TestClient(create_app())
    r = client.get("/api/approvals/me", headers={"X-User-Email": "a@b.c", "X-User-Role": "admin"})
    assert r.status_code == 401
