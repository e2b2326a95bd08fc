# backend/tests/test_listing_type_constraints.py
from __future__ import annotations

import uuid

import pytest
from sqlalchemy.exc import IntegrityError

from backoffice.errors import ValidationFailed
from backoffice.models import Property
from backoffice.services.property_service import create_property, missing_listing_fields


def _row(**kw) -> Property:
    base = dict(
        code=f"PRP-C-{uuid.uuid4().hex[:8]}",
        property_category="residential",
        category="sale",
        status="pending",
    )
    base.update(kw)
    return Property(**base)


def test_brokerage_without_owner_fields_is_rejected_by_storage(db_session):
    db_session.add(_row(listing_type="brokerage", owner_first_name="Samir"))
    with pytest.raises(IntegrityError):
        db_session.commit()
    db_session.rollback()


def test_owned_listing_without_buy_price_is_rejected_by_storage(db_session):
    db_session.add(_row(listing_type="agency_owned"))
    with pytest.raises(IntegrityError):
        db_session.commit()
    db_session.rollback()


def test_unknown_status_is_rejected_by_storage(db_session):
    db_session.add(_row(listing_type="branch_owned", buy_price_azn=90000, status="draft"))
    with pytest.raises(IntegrityError):
        db_session.commit()
    db_session.rollback()


def test_valid_rows_are_accepted(db_session):
    db_session.add(_row(listing_type="branch_owned", buy_price_azn=90000))
    db_session.add(
        _row(
            listing_type="brokerage",
            owner_first_name="Samir",
            owner_last_name="Huseynov",
            owner_contact="samir@example.az",
            brokerage_commission_percent=3.0,
        )
    )
    db_session.commit()


def test_missing_listing_fields():
    assert missing_listing_fields({"listing_type": "agency_owned", "buy_price_azn": 1}) == []
    assert missing_listing_fields({"listing_type": "agency_owned"}) == ["buy_price_azn"]
    assert missing_listing_fields({"listing_type": "brokerage", "owner_first_name": "  "}) == [
        "owner_first_name",
        "owner_last_name",
        "owner_contact",
        "brokerage_commission_percent",
    ]
    assert missing_listing_fields({"listing_type": "rental"}) == ["listing_type"]


def test_service_reports_missing_fields_before_storage(db_session, users, as_principal):
    agent = as_principal(users["agent"])
    with pytest.raises(ValidationFailed) as exc:
        create_property(db_session, payload={"listing_type": "brokerage", "owner_first_name": "Samir"}, actor=agent)
    assert exc.value.code == "VALIDATION_ERROR"
    assert "owner_contact" in exc.value.details["missing"]


def test_service_creates_pending_with_generated_code(db_session, users, as_principal):
    agent = as_principal(users["agent"])
    prop = create_property(
        db_session,
        payload={"listing_type": "agency_owned", "buy_price_azn": 120000, "status": "active"},
        actor=agent,
    )
    assert prop.status == "pending"
    assert prop.code.startswith("PRP-")
    assert prop.created_by_id == agent.user_id
    assert prop.agent_id == agent.user_id
