# backend/tests/test_api_scenarios.py
from __future__ import annotations

import base64
import hashlib
import hmac
import json

import pytest
from sqlalchemy import func, select

from backoffice.auth import sign_token
from backoffice.config import settings
from backoffice.models import AuditLog, Booking, Property


def _refetch(db, prop_id: int) -> Property:
    db.expire_all()
    return db.get(Property, prop_id)


def test_manager_approves_pending_agency_listing(client, db_session, users, make_property, dev_headers):
    p1 = make_property(listing_type="agency_owned", buy_price_azn=100000)

    r = client.post(f"/api/properties/{p1.id}/approve", json={}, headers=dev_headers(users["manager"]))
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["new_status"] == "active"
    assert body["property_id"] == p1.id
    assert isinstance(body["audit_log_id"], int)

    history = client.get(f"/api/properties/{p1.id}/approval-history", headers=dev_headers(users["manager"])).json()
    assert len(history) == 1
    assert history[0]["action"] == "APPROVE"
    assert history[0]["actor_role"] == "manager"
    assert history[0]["actor"] == "Manager Tester"
    assert history[0]["before_state"]["status"] == "pending"
    assert history[0]["after_state"]["status"] == "active"


def test_approve_without_body(client, users, make_property, dev_headers):
    prop = make_property()
    r = client.post(f"/api/properties/{prop.id}/approve", headers=dev_headers(users["director"]))
    assert r.status_code == 200, r.text
    assert r.json()["new_status"] == "active"


def test_agent_cannot_approve(client, db_session, users, make_property, dev_headers):
    p2 = make_property()
    r = client.post(f"/api/properties/{p2.id}/approve", json={}, headers=dev_headers(users["agent"]))
    assert r.status_code == 403
    body = r.json()
    assert body["success"] is False
    assert body["error"]["code"] == "INSUFFICIENT_PERMISSIONS"
    assert _refetch(db_session, p2.id).status == "pending"


def test_second_booking_on_active_property_conflicts(client, db_session, users, make_property, make_customer, dev_headers):
    p3 = make_property(status="active")
    c1 = make_customer()
    c2 = make_customer(phone=None, email="second@example.az")

    r = client.post(f"/api/properties/{p3.id}/bookings", json={"customer_id": c1.id}, headers=dev_headers(users["agent"]))
    assert r.status_code == 201, r.text
    b1 = r.json()
    assert b1["status"] == "ACTIVE"

    r = client.post(f"/api/properties/{p3.id}/bookings", json={"customer_id": c2.id}, headers=dev_headers(users["manager"]))
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "BOOKING_CONFLICT"

    active = db_session.scalars(
        select(Booking.id).where(Booking.property_id == p3.id, Booking.status == "ACTIVE")
    ).all()
    assert active == [b1["id"]]


def test_short_rejection_reason_changes_nothing(client, db_session, users, make_property, dev_headers):
    p4 = make_property()
    r = client.post(
        f"/api/properties/{p4.id}/reject",
        json={"reason": "too short"},
        headers=dev_headers(users["director"]),
    )
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "VALIDATION_ERROR"
    assert _refetch(db_session, p4.id).status == "pending"
    assert db_session.scalar(select(func.count()).select_from(AuditLog)) == 0


def test_reject_with_reason(client, db_session, users, make_property, dev_headers):
    prop = make_property()
    r = client.post(
        f"/api/properties/{prop.id}/reject",
        json={"reason": "  owner documents are missing  "},
        headers=dev_headers(users["vp"]),
    )
    assert r.status_code == 200, r.text
    assert r.json()["new_status"] == "rejected"
    assert r.json()["rejection_reason"] == "owner documents are missing"

    entry = db_session.scalar(select(AuditLog).where(AuditLog.entity_id == str(prop.id)))
    assert entry.action == "REJECT"
    assert "owner documents are missing" in entry.meta_json


def test_approving_twice_is_invalid_status(client, users, make_property, dev_headers):
    prop = make_property()
    assert client.post(f"/api/properties/{prop.id}/approve", headers=dev_headers(users["manager"])).status_code == 200
    r = client.post(f"/api/properties/{prop.id}/approve", headers=dev_headers(users["manager"]))
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "INVALID_STATUS"


def test_unknown_property(client, users, dev_headers):
    r = client.post("/api/properties/987654/approve", headers=dev_headers(users["manager"]))
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "PROPERTY_NOT_FOUND"


def test_pending_list_is_oldest_first_and_paginated(client, users, make_property, dev_headers):
    from datetime import datetime, timedelta

    now = datetime.utcnow()
    old = make_property(created_at=now - timedelta(days=5))
    mid = make_property(created_at=now - timedelta(days=2))
    make_property(created_at=now)
    make_property(status="active")

    r = client.get("/api/approvals/pending?limit=2", headers=dev_headers(users["manager"]))
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["total"] == 3
    assert [p["id"] for p in body["properties"]] == [old.id, mid.id]
    assert body["properties"][0]["days_pending"] == 5

    r = client.get("/api/approvals/pending?limit=2&offset=2", headers=dev_headers(users["manager"]))
    assert len(r.json()["properties"]) == 1


def test_pending_list_requires_reviewer(client, users, dev_headers):
    r = client.get("/api/approvals/pending", headers=dev_headers(users["agent"]))
    assert r.status_code == 403


# -------------------- identity --------------------

def test_missing_credentials(client, make_property):
    prop = make_property()
    r = client.post(f"/api/properties/{prop.id}/approve")
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "TOKEN_REQUIRED"


def test_malformed_token(client):
    r = client.get("/api/approvals/pending", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "INVALID_TOKEN"


def test_expired_token(client, users):
    token = sign_token(user_id=users["manager"].id, role="manager", exp_minutes=-5)
    r = client.get("/api/approvals/pending", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "INVALID_TOKEN"


def test_tampered_role_claim(client, users):
    token = sign_token(user_id=users["agent"].id, role="agent")
    header, _, sig = token.split(".")
    forged = sign_token(user_id=users["agent"].id, role="admin").split(".")[1]
    r = client.get("/api/approvals/pending", headers={"Authorization": f"Bearer {header}.{forged}.{sig}"})
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "INVALID_TOKEN"


def test_bearer_token_approves(client, users, make_property):
    prop = make_property()
    token = sign_token(user_id=users["director"].id, role="director")
    r = client.post(f"/api/properties/{prop.id}/approve", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200, r.text
    assert r.json()["new_status"] == "active"


def test_unknown_dev_role_is_rejected(client, users):
    r = client.get("/api/approvals/pending", headers={"X-User-Id": str(users["manager"].id), "X-User-Role": "owner"})
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "INVALID_TOKEN"


def test_request_id_is_echoed(client, users, dev_headers):
    r = client.get("/api/health", headers={"X-Request-ID": "abc-123"})
    assert r.status_code == 200
    assert r.headers["X-Request-ID"] == "abc-123"


def test_booking_accepts_utc_suffixed_end_date(client, db_session, users, make_property, make_customer, dev_headers):
    prop = make_property(status="active")
    r = client.post(
        f"/api/properties/{prop.id}/bookings",
        json={"customer_id": make_customer().id, "end_date": "2099-01-01T04:00:00+04:00"},
        headers=dev_headers(users["agent"]),
    )
    assert r.status_code == 201, r.text

    db_session.expire_all()
    stored = db_session.scalar(select(Booking.end_date).where(Booking.property_id == prop.id))
    assert stored.tzinfo is None
    assert (stored.year, stored.month, stored.day, stored.hour) == (2099, 1, 1, 0)

    other = make_property(status="active")
    r = client.post(
        f"/api/properties/{other.id}/bookings",
        json={"customer_id": make_customer().id, "end_date": "2000-01-01T00:00:00Z"},
        headers=dev_headers(users["agent"]),
    )
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "VALIDATION_ERROR"


def test_booking_edit_only_while_active(client, users, make_property, make_customer, dev_headers):
    prop = make_property(status="active")
    agent = dev_headers(users["agent"])
    booking = client.post(f"/api/properties/{prop.id}/bookings", json={"customer_id": make_customer().id}, headers=agent).json()

    r = client.patch(
        f"/api/bookings/{booking['id']}",
        json={"end_date": "2099-06-01T00:00:00Z", "notes": "customer asked for more time"},
        headers=agent,
    )
    assert r.status_code == 200, r.text
    assert r.json()["notes"] == "customer asked for more time"
    assert r.json()["end_date"].startswith("2099-06-01")

    r = client.patch(f"/api/bookings/{booking['id']}", json={"status": "CONVERTED"}, headers=agent)
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "VALIDATION_ERROR"

    assert client.post(f"/api/bookings/{booking['id']}/cancel", json={}, headers=agent).status_code == 200
    r = client.patch(f"/api/bookings/{booking['id']}", json={"notes": "too late"}, headers=agent)
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "BOOKING_NOT_ACTIVE"


def _signed(header, payload) -> str:
    def seg(obj) -> str:
        return base64.urlsafe_b64encode(json.dumps(obj).encode()).decode().rstrip("=")

    msg = f"{seg(header)}.{seg(payload)}"
    sig = hmac.new(settings.jwt_secret.encode(), msg.encode(), hashlib.sha256).digest()
    return f"{msg}.{base64.urlsafe_b64encode(sig).decode().rstrip('=')}"


@pytest.mark.parametrize(
    "header, payload",
    [
        ([], {"sub": "1", "role": "manager"}),
        ({"alg": "HS256"}, ["sub", "1"]),
        ({"alg": "HS256"}, {"sub": "1", "role": "manager", "exp": "tomorrow"}),
        ({"alg": "HS256"}, {"sub": "1", "role": "manager", "exp": {"at": 1}}),
    ],
)
def test_oddly_shaped_token_is_invalid_not_a_crash(client, header, payload):
    r = client.get("/api/approvals/pending", headers={"Authorization": f"Bearer {_signed(header, payload)}"})
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "INVALID_TOKEN"
