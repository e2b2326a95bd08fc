# backend/tests/test_properties_api.py
from __future__ import annotations

from sqlalchemy import select

from backoffice.models import Notification


def _brokerage_payload(**kw) -> dict:
    body = {
        "listing_type": "brokerage",
        "property_category": "commercial",
        "category": "rent",
        "area_m2": 140,
        "owner_first_name": "Tural",
        "owner_last_name": "Qasimov",
        "owner_contact": "+994701112233",
        "brokerage_commission_percent": 2.0,
    }
    body.update(kw)
    return body


def test_agent_creates_pending_property(client, users, dev_headers):
    r = client.post("/api/properties", json=_brokerage_payload(), headers=dev_headers(users["agent"]))
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["status"] == "pending"
    assert body["created_by_id"] == users["agent"].id
    assert body["code"].startswith("PRP-")


def test_create_reports_missing_listing_fields(client, users, dev_headers):
    r = client.post(
        "/api/properties",
        json=_brokerage_payload(owner_contact=None, brokerage_commission_percent=None),
        headers=dev_headers(users["agent"]),
    )
    assert r.status_code == 400
    err = r.json()["error"]
    assert err["code"] == "VALIDATION_ERROR"
    assert sorted(err["details"]["missing"]) == ["brokerage_commission_percent", "owner_contact"]


def test_call_center_cannot_create(client, users, dev_headers):
    r = client.post("/api/properties", json=_brokerage_payload(), headers=dev_headers(users["call_center"]))
    assert r.status_code == 403


def test_duplicate_code_conflicts(client, users, dev_headers):
    h = dev_headers(users["manager"])
    assert client.post("/api/properties", json=_brokerage_payload(code="PRP-FIXED-1"), headers=h).status_code == 201
    r = client.post("/api/properties", json=_brokerage_payload(code="PRP-FIXED-1"), headers=h)
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "CONFLICT"


def test_edit_only_while_pending_and_never_status(client, users, make_property, dev_headers):
    prop = make_property()
    h = dev_headers(users["agent"])

    r = client.patch(f"/api/properties/{prop.id}", json={"district": "Yasamal", "rooms_count": 4}, headers=h)
    assert r.status_code == 200, r.text
    assert r.json()["district"] == "Yasamal"

    r = client.patch(f"/api/properties/{prop.id}", json={"status": "active"}, headers=h)
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "VALIDATION_ERROR"

    active = make_property(status="active")
    r = client.patch(f"/api/properties/{active.id}", json={"district": "Sabail"}, headers=h)
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "INVALID_STATUS"


def test_agent_cannot_edit_someone_elses_listing(client, users, make_property, dev_headers):
    prop = make_property(created_by_id=users["manager"].id, agent_id=users["manager"].id)
    r = client.patch(f"/api/properties/{prop.id}", json={"district": "Khatai"}, headers=dev_headers(users["agent"]))
    assert r.status_code == 403


def test_list_filters(client, users, make_property, dev_headers):
    make_property(status="active")
    make_property(status="active", listing_type="brokerage")
    make_property()

    h = dev_headers(users["call_center"])
    r = client.get("/api/properties?status=active", headers=h)
    assert r.status_code == 200
    assert r.json()["total"] == 2

    r = client.get("/api/properties?status=active&listing_type=brokerage", headers=h)
    assert [p["listing_type"] for p in r.json()["items"]] == ["brokerage"]


def test_archive_goes_through_the_executor(client, users, make_property, dev_headers):
    prop = make_property(status="active")
    r = client.post(f"/api/properties/{prop.id}/archive", json={"reason": "owner withdrew"}, headers=dev_headers(users["director"]))
    assert r.status_code == 200, r.text
    assert r.json()["new_status"] == "archived"

    r = client.get(f"/api/properties/{prop.id}", headers=dev_headers(users["director"]))
    assert r.json()["archived_at"] is not None

    r = client.post(f"/api/properties/{prop.id}/archive", headers=dev_headers(users["agent"]))
    assert r.status_code == 403


def test_approval_notifies_creator(client, db_session, users, make_property, dev_headers):
    prop = make_property()
    r = client.post(f"/api/properties/{prop.id}/approve", headers=dev_headers(users["manager"]))
    assert r.status_code == 200

    notes = db_session.scalars(select(Notification).where(Notification.related_property_id == prop.id)).all()
    assert [(n.recipient_id, n.type) for n in notes] == [(users["agent"].id, "property_approved")]
    assert prop.code in notes[0].message


def test_notification_failure_does_not_fail_the_transition(client, users, make_property, dev_headers, monkeypatch):
    from backoffice.services import notifications

    def _down(**kwargs):
        raise RuntimeError("smtp relay down")

    monkeypatch.setattr(notifications, "deliver_in_new_session", _down)

    prop = make_property()
    r = client.post(f"/api/properties/{prop.id}/approve", headers=dev_headers(users["manager"]))
    assert r.status_code == 200
    assert r.json()["new_status"] == "active"


def test_customer_and_audit_reads(client, users, make_property, dev_headers):
    r = client.post(
        "/api/customers",
        json={"first_name": "Gunel", "last_name": "Rzayeva", "email": "gunel@example.az"},
        headers=dev_headers(users["call_center"]),
    )
    assert r.status_code == 201, r.text
    assert r.json()["type"] == "buyer"

    r = client.post(
        "/api/customers",
        json={"first_name": "No", "last_name": "Contact"},
        headers=dev_headers(users["call_center"]),
    )
    assert r.status_code == 400

    prop = make_property()
    client.post(f"/api/properties/{prop.id}/approve", headers=dev_headers(users["vp"]))

    r = client.get(f"/api/audit?actor_id={users['vp'].id}", headers=dev_headers(users["director"]))
    assert r.status_code == 200
    assert [e["action"] for e in r.json()] == ["APPROVE"]
    assert r.json()[0]["entity_id"] == str(prop.id)

    r = client.get(f"/api/audit?actor_id={users['vp'].id}", headers=dev_headers(users["manager"]))
    assert r.status_code == 403

    r = client.get("/api/audit", headers=dev_headers(users["admin"]))
    assert r.status_code == 400
