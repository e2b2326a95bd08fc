# backend/tests/test_booking_guard.py
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from backoffice.errors import ApiError, ConflictError, NotFoundError, StateError
from backoffice.models import AuditLog, Booking, Property
from backoffice.services import booking_guard
from backoffice.services.booking_guard import (
    cancel_booking,
    convert_booking,
    create_booking,
    expire_overdue_bookings,
    update_booking,
)


def _active_count(db, property_id: int) -> int:
    return int(
        db.scalar(
            select(func.count()).select_from(Booking).where(
                Booking.property_id == property_id, Booking.status == "ACTIVE"
            )
        )
    )


def test_storage_allows_one_active_booking_per_property(db_session, make_property, make_customer):
    prop = make_property(status="active")
    cust = make_customer()
    end = datetime.utcnow() + timedelta(days=3)

    db_session.add(Booking(property_id=prop.id, customer_id=cust.id, status="ACTIVE", end_date=end))
    db_session.commit()

    db_session.add(Booking(property_id=prop.id, customer_id=cust.id, status="ACTIVE", end_date=end))
    with pytest.raises(IntegrityError):
        db_session.commit()
    db_session.rollback()

    # terminal bookings do not count
    db_session.add(Booking(property_id=prop.id, customer_id=cust.id, status="CANCELLED", end_date=end))
    db_session.add(Booking(property_id=prop.id, customer_id=cust.id, status="EXPIRED", end_date=end))
    db_session.commit()
    assert _active_count(db_session, prop.id) == 1


def test_second_booking_conflicts(db_session, users, make_property, make_customer, as_principal):
    prop = make_property(status="active")
    agent = as_principal(users["agent"])

    b1 = create_booking(db_session, property_id=prop.id, customer_id=make_customer().id, actor=agent)
    assert b1.status == "ACTIVE"
    assert b1.end_date > datetime.utcnow()

    with pytest.raises(ConflictError) as exc:
        create_booking(db_session, property_id=prop.id, customer_id=make_customer().id, actor=agent)
    assert exc.value.code == "BOOKING_CONFLICT"
    assert exc.value.details["active_booking_id"] == b1.id
    assert _active_count(db_session, prop.id) == 1


def test_pending_property_is_not_bookable(db_session, users, make_property, make_customer, as_principal):
    prop = make_property()
    with pytest.raises(StateError) as exc:
        create_booking(db_session, property_id=prop.id, customer_id=make_customer().id, actor=as_principal(users["agent"]))
    assert exc.value.code == "PROPERTY_NOT_BOOKABLE"


def test_unknown_customer(db_session, users, make_property, as_principal):
    prop = make_property(status="active")
    with pytest.raises(NotFoundError) as exc:
        create_booking(db_session, property_id=prop.id, customer_id=999999, actor=as_principal(users["manager"]))
    assert exc.value.code == "CUSTOMER_NOT_FOUND"


def test_cancel_frees_the_property(db_session, users, make_property, make_customer, as_principal):
    prop = make_property(status="active")
    agent = as_principal(users["agent"])
    b1 = create_booking(db_session, property_id=prop.id, customer_id=make_customer().id, actor=agent)

    cancelled = cancel_booking(db_session, booking_id=b1.id, actor=agent, reason="customer changed mind")
    assert cancelled.status == "CANCELLED"
    assert cancelled.cancelled_at is not None
    assert cancelled.cancel_reason == "customer changed mind"

    with pytest.raises(StateError) as exc:
        cancel_booking(db_session, booking_id=b1.id, actor=agent)
    assert exc.value.code == "BOOKING_NOT_ACTIVE"

    b2 = create_booking(db_session, property_id=prop.id, customer_id=make_customer().id, actor=agent)
    assert b2.status == "ACTIVE"


def test_convert_sells_the_property(db_session, users, make_property, make_customer, as_principal):
    prop = make_property(status="active")
    manager = as_principal(users["manager"])
    b = create_booking(db_session, property_id=prop.id, customer_id=make_customer().id, actor=manager)

    converted = convert_booking(db_session, booking_id=b.id, actor=manager, sale_price_azn=182000)
    assert converted.status == "CONVERTED"
    assert converted.converted_at is not None
    assert converted.sale_price_azn == 182000

    db_session.expire_all()
    sold = db_session.get(Property, prop.id)
    assert sold.status == "sold"
    assert sold.sold_at is not None
    assert sold.sell_price_azn == 182000

    actions = db_session.scalars(select(AuditLog.action).order_by(AuditLog.id)).all()
    assert actions == ["BOOK", "CONVERTED", "MARK_SOLD"]

    # idempotent
    again = convert_booking(db_session, booking_id=b.id, actor=manager, sale_price_azn=182000)
    assert again.id == b.id
    assert again.status == "CONVERTED"


def test_convert_requires_positive_price(db_session, users, make_property, make_customer, as_principal):
    prop = make_property(status="active")
    manager = as_principal(users["manager"])
    b = create_booking(db_session, property_id=prop.id, customer_id=make_customer().id, actor=manager)
    with pytest.raises(ApiError) as exc:
        convert_booking(db_session, booking_id=b.id, actor=manager, sale_price_azn=0)
    assert exc.value.code == "INVALID_SALE_PRICE"


def test_agent_cannot_touch_other_agents_booking(db_session, users, make_property, make_customer, as_principal):
    prop = make_property(status="active", agent_id=users["manager"].id, created_by_id=users["manager"].id)
    b = create_booking(db_session, property_id=prop.id, customer_id=make_customer().id, actor=as_principal(users["manager"]))
    with pytest.raises(ApiError) as exc:
        cancel_booking(db_session, booking_id=b.id, actor=as_principal(users["agent"]))
    assert exc.value.code == "INSUFFICIENT_PERMISSIONS"


def test_expire_overdue(db_session, users, make_property, make_customer, as_principal):
    manager = as_principal(users["manager"])
    soon = create_booking(
        db_session,
        property_id=make_property(status="active").id,
        customer_id=make_customer().id,
        actor=manager,
        end_date=datetime.utcnow() + timedelta(days=1),
    )
    later = create_booking(
        db_session,
        property_id=make_property(status="active").id,
        customer_id=make_customer().id,
        actor=manager,
        end_date=datetime.utcnow() + timedelta(days=30),
    )

    expired = expire_overdue_bookings(db_session, now=datetime.utcnow() + timedelta(days=2))
    assert expired == [soon.id]

    db_session.expire_all()
    assert db_session.get(Booking, soon.id).status == "EXPIRED"
    assert db_session.get(Booking, soon.id).expired_at is not None
    assert db_session.get(Booking, later.id).status == "ACTIVE"

    entry = db_session.scalar(select(AuditLog).where(AuditLog.action == "EXPIRED"))
    assert entry.actor_role == "system"
    assert entry.actor_id is None


def test_constraint_decides_when_precheck_misses(db_session, users, make_property, make_customer, as_principal, monkeypatch):
    prop = make_property(status="active")
    manager = as_principal(users["manager"])
    first = create_booking(db_session, property_id=prop.id, customer_id=make_customer().id, actor=manager)

    # another request inserted between our read and our write
    monkeypatch.setattr(booking_guard, "active_booking_for", lambda db, property_id: None)

    with pytest.raises(ConflictError) as exc:
        create_booking(db_session, property_id=prop.id, customer_id=make_customer().id, actor=manager)
    assert exc.value.code == "BOOKING_CONFLICT"
    assert exc.value.details["property_id"] == prop.id

    db_session.expire_all()
    assert _active_count(db_session, prop.id) == 1
    assert db_session.scalars(select(Booking.id).where(Booking.property_id == prop.id)).all() == [first.id]
    assert db_session.scalars(select(AuditLog.action)).all() == ["BOOK"]


def test_offset_aware_end_date_is_stored_as_utc(db_session, users, make_property, make_customer, as_principal):
    prop = make_property(status="active")
    baku = timezone(timedelta(hours=4))
    b = create_booking(
        db_session,
        property_id=prop.id,
        customer_id=make_customer().id,
        actor=as_principal(users["agent"]),
        end_date=datetime(2099, 3, 1, 10, 0, tzinfo=baku),
    )
    assert b.end_date == datetime(2099, 3, 1, 6, 0)

    with pytest.raises(ApiError) as exc:
        create_booking(
            db_session,
            property_id=make_property(status="active").id,
            customer_id=make_customer().id,
            actor=as_principal(users["agent"]),
            end_date=datetime(2001, 1, 1, tzinfo=timezone.utc),
        )
    assert exc.value.code == "VALIDATION_ERROR"


def test_update_booking_is_audited(db_session, users, make_property, make_customer, as_principal):
    prop = make_property(status="active")
    agent = as_principal(users["agent"])
    b = create_booking(db_session, property_id=prop.id, customer_id=make_customer().id, actor=agent)

    updated = update_booking(
        db_session,
        booking_id=b.id,
        actor=agent,
        changes={"deposit_amount_azn": 500.0, "end_date": datetime(2099, 5, 1), "status": "CONVERTED"},
    )
    assert updated.status == "ACTIVE"
    assert updated.deposit_amount_azn == 500.0
    assert updated.end_date == datetime(2099, 5, 1)

    entry = db_session.scalar(select(AuditLog).where(AuditLog.action == "UPDATE_BOOKING"))
    assert entry.entity == "booking"
    assert entry.entity_id == str(b.id)


def test_update_booking_requires_active(db_session, users, make_property, make_customer, as_principal):
    prop = make_property(status="active")
    agent = as_principal(users["agent"])
    b = create_booking(db_session, property_id=prop.id, customer_id=make_customer().id, actor=agent)
    cancel_booking(db_session, booking_id=b.id, actor=agent)

    with pytest.raises(StateError) as exc:
        update_booking(db_session, booking_id=b.id, actor=agent, changes={"notes": "extend"})
    assert exc.value.code == "BOOKING_NOT_ACTIVE"
