# backend/backoffice/services/booking_guard.py
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import desc, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..auth import Principal
from ..config import settings
from ..domain.approval_policy import ACTION_MARK_SOLD, evaluate, evaluate_booking, has_permission
from ..domain.audit import ENTITY_BOOKING, audit_write
from ..domain.statuses import (
    BOOKING_ACTIVE,
    BOOKING_CANCELLED,
    BOOKING_CONVERTED,
    BOOKING_EXPIRED,
    ROLE_AGENT,
)
from ..errors import ConflictError, ForbiddenError, NotFoundError, StateError, ValidationFailed, error_for_denial
from ..models import Booking, Customer, Property
from .notifications import notify, notify_many
from .property_service import get_property
from .transition_executor import apply_transition, notify_transition

log = logging.getLogger("backoffice.bookings")

# -----------------------------------------------------------------------------
# Booking Consistency Guard
# -----------------------------------------------------------------------------
# At most one ACTIVE booking per property. The partial unique index
# uq_bookings_property_active is the ground truth; the read below only exists
# to return a readable error in the common case. An IntegrityError on insert
# maps to the same BOOKING_CONFLICT.
#
# ACTIVE -> CONVERTED | CANCELLED | EXPIRED, all terminal.
# -----------------------------------------------------------------------------

SYSTEM_ROLE = "system"

BOOKING_EDITABLE_FIELDS = ("end_date", "deposit_amount_azn", "notes")


def _utcnow() -> datetime:
    return datetime.utcnow()


def as_naive_utc(value: datetime) -> datetime:
    """Columns hold naive UTC; offset-aware input is converted first."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _future_end_date(value: datetime, now: datetime) -> datetime:
    end = as_naive_utc(value)
    if end <= now:
        raise ValidationFailed("end_date must be in the future", details={"end_date": end.isoformat()})
    return end


def booking_snapshot(b: Booking) -> dict[str, Any]:
    return {
        "status": b.status,
        "property_id": b.property_id,
        "customer_id": b.customer_id,
        "end_date": b.end_date,
        "deposit_amount_azn": b.deposit_amount_azn,
    }


def active_booking_for(db: Session, property_id: int) -> Optional[Booking]:
    return db.scalar(
        select(Booking).where(Booking.property_id == int(property_id), Booking.status == BOOKING_ACTIVE)
    )


def _conflict(property_id: int, existing: Optional[Booking]) -> ConflictError:
    details = {"property_id": int(property_id)}
    if existing is not None:
        details["active_booking_id"] = int(existing.id)
    return ConflictError(
        "This property already has an active booking",
        code="BOOKING_CONFLICT",
        details=details,
    )


def create_booking(
    db: Session,
    *,
    property_id: int,
    customer_id: int,
    actor: Principal,
    end_date: Optional[datetime] = None,
    deposit_amount_azn: Optional[float] = None,
    notes: Optional[str] = None,
) -> Booking:
    prop = get_property(db, property_id)

    decision = evaluate_booking(prop.status, actor.role)
    if not decision.allowed:
        raise error_for_denial(decision.code or "PROPERTY_NOT_BOOKABLE", decision.reason or "Property is not bookable")

    if db.get(Customer, int(customer_id)) is None:
        raise NotFoundError("Customer not found", code="CUSTOMER_NOT_FOUND")

    now = _utcnow()
    end = _future_end_date(end_date or (now + timedelta(days=int(settings.booking_default_days))), now)

    existing = active_booking_for(db, prop.id)
    if existing is not None:
        raise _conflict(prop.id, existing)

    booking = Booking(
        property_id=prop.id,
        customer_id=int(customer_id),
        status=BOOKING_ACTIVE,
        booking_date=now,
        end_date=end,
        deposit_amount_azn=deposit_amount_azn,
        notes=notes,
        created_by_id=actor.user_id,
        created_at=now,
        updated_at=now,
    )
    db.add(booking)
    try:
        db.flush()
    except IntegrityError:
        # Lost the race to a concurrent insert: the index decided.
        db.rollback()
        log.warning("active booking insert rejected by constraint", extra={"property_id": int(property_id)})
        raise _conflict(property_id, active_booking_for(db, property_id))

    audit_write(
        db,
        actor_id=actor.user_id,
        actor_role=actor.role,
        action="BOOK",
        entity=ENTITY_BOOKING,
        entity_id=booking.id,
        after=booking_snapshot(booking),
        meta={"property_code": prop.code},
    )
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise _conflict(property_id, active_booking_for(db, property_id))

    db.refresh(booking)
    log.info("booking created", extra={"booking_id": booking.id, "property_id": prop.id, "user_id": actor.user_id})
    notify_many(
        [prop.agent_id, prop.created_by_id],
        "booking_confirmed",
        related_property_id=prop.id,
        related_booking_id=booking.id,
        property_code=prop.code,
        sender_id=actor.user_id,
    )
    return booking


def get_booking(db: Session, *, booking_id: int, actor: Principal) -> Booking:
    booking = db.get(Booking, int(booking_id))
    if booking is None:
        raise NotFoundError("Booking not found", code="BOOKING_NOT_FOUND")
    if not has_permission(actor.role, "booking:manage"):
        raise ForbiddenError(f"Role '{actor.role}' may not manage bookings")
    if actor.role == ROLE_AGENT:
        prop = db.get(Property, booking.property_id)
        owners = {booking.created_by_id, prop.agent_id if prop else None}
        if actor.user_id not in owners:
            raise ForbiddenError("Agents may only access bookings for their own properties")
    return booking


def list_bookings(
    db: Session,
    *,
    actor: Principal,
    status: Optional[str] = None,
    property_id: Optional[int] = None,
    customer_id: Optional[int] = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Booking]:
    q = select(Booking).join(Property, Property.id == Booking.property_id)
    if actor.role == ROLE_AGENT:
        q = q.where((Property.agent_id == actor.user_id) | (Booking.created_by_id == actor.user_id))
    if status:
        q = q.where(Booking.status == status)
    if property_id is not None:
        q = q.where(Booking.property_id == int(property_id))
    if customer_id is not None:
        q = q.where(Booking.customer_id == int(customer_id))
    q = q.order_by(desc(Booking.created_at), desc(Booking.id)).limit(int(limit)).offset(int(offset))
    return list(db.scalars(q).all())


def update_booking(
    db: Session,
    *,
    booking_id: int,
    actor: Principal,
    changes: dict[str, Any],
) -> Booking:
    """
    Edit end_date, deposit or notes of an ACTIVE booking. The write is
    conditional on the booking still being ACTIVE.
    """
    booking = get_booking(db, booking_id=booking_id, actor=actor)
    values = {k: v for k, v in changes.items() if k in BOOKING_EDITABLE_FIELDS}
    if not values:
        raise ValidationFailed("Nothing to update", details={"fields": list(BOOKING_EDITABLE_FIELDS)})

    now = _utcnow()
    if values.get("end_date") is not None:
        values["end_date"] = _future_end_date(values["end_date"], now)
    elif "end_date" in values:
        raise ValidationFailed("end_date cannot be cleared", details={"end_date": None})

    before = booking_snapshot(booking)
    res = db.execute(
        update(Booking)
        .where(Booking.id == booking.id, Booking.status == BOOKING_ACTIVE)
        .values(updated_at=now, **values)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        db.rollback()
        db.refresh(booking)
        raise StateError(
            f"Only active bookings can be edited (booking is {booking.status})",
            code="BOOKING_NOT_ACTIVE",
        )
    db.refresh(booking)
    audit_write(
        db,
        actor_id=actor.user_id,
        actor_role=actor.role,
        action="UPDATE_BOOKING",
        entity=ENTITY_BOOKING,
        entity_id=booking.id,
        before=before,
        after=booking_snapshot(booking),
        meta={"fields": sorted(values)},
    )
    db.commit()
    log.info("booking updated", extra={"booking_id": booking.id, "user_id": actor.user_id})
    return booking


def _close_booking(
    db: Session,
    *,
    booking: Booking,
    to_status: str,
    actor_id: Optional[int],
    actor_role: str,
    values: dict[str, Any],
    meta: Optional[dict[str, Any]] = None,
) -> None:
    """Conditional ACTIVE -> terminal update plus its audit row; flush only."""
    before = booking_snapshot(booking)
    res = db.execute(
        update(Booking)
        .where(Booking.id == booking.id, Booking.status == BOOKING_ACTIVE)
        .values(status=to_status, updated_at=_utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        db.rollback()
        db.refresh(booking)
        raise StateError(
            f"Only active bookings can change status (booking is {booking.status})",
            code="BOOKING_NOT_ACTIVE",
        )
    db.refresh(booking)
    audit_write(
        db,
        actor_id=actor_id,
        actor_role=actor_role,
        action=to_status,
        entity=ENTITY_BOOKING,
        entity_id=booking.id,
        before=before,
        after=booking_snapshot(booking),
        meta=meta,
    )


def cancel_booking(db: Session, *, booking_id: int, actor: Principal, reason: Optional[str] = None) -> Booking:
    booking = get_booking(db, booking_id=booking_id, actor=actor)
    now = _utcnow()
    _close_booking(
        db,
        booking=booking,
        to_status=BOOKING_CANCELLED,
        actor_id=actor.user_id,
        actor_role=actor.role,
        values={"cancelled_at": now, "cancel_reason": reason},
        meta={"reason": reason},
    )
    db.commit()
    log.info("booking cancelled", extra={"booking_id": booking.id, "user_id": actor.user_id})

    prop = db.get(Property, booking.property_id)
    if prop is not None:
        notify(
            prop.agent_id,
            "booking_cancelled",
            prop.id,
            related_booking_id=booking.id,
            property_code=prop.code,
            sender_id=actor.user_id,
        )
    return booking


def convert_booking(
    db: Session,
    *,
    booking_id: int,
    actor: Principal,
    sale_price_azn: float,
    notes: Optional[str] = None,
) -> Booking:
    """
    Close the deal: booking -> CONVERTED and property active -> sold, in one
    transaction. Converting an already converted booking returns it unchanged.
    """
    if sale_price_azn is None or float(sale_price_azn) <= 0:
        raise ValidationFailed("A positive sale price is required", code="INVALID_SALE_PRICE")

    booking = get_booking(db, booking_id=booking_id, actor=actor)
    if booking.status == BOOKING_CONVERTED:
        return booking

    prop = get_property(db, booking.property_id)
    decision = evaluate(prop.status, actor.role, ACTION_MARK_SOLD)
    if not decision.allowed:
        raise error_for_denial(decision.code or "INVALID_STATUS", decision.reason or "Cannot mark as sold")

    now = _utcnow()
    _close_booking(
        db,
        booking=booking,
        to_status=BOOKING_CONVERTED,
        actor_id=actor.user_id,
        actor_role=actor.role,
        values={"converted_at": now, "sale_price_azn": float(sale_price_azn)},
        meta={"sale_price_azn": float(sale_price_azn), "notes": notes},
    )
    try:
        transition = apply_transition(
            db,
            property_id=prop.id,
            decision=decision,
            actor=actor,
            meta={"booking_id": booking.id, "sale_price_azn": float(sale_price_azn)},
            extra_values={"sell_price_azn": float(sale_price_azn)},
            commit=False,
        )
    except ConflictError:
        db.rollback()
        raise

    db.commit()
    db.refresh(booking)
    log.info("booking converted", extra={"booking_id": booking.id, "property_id": prop.id, "user_id": actor.user_id})
    notify_transition(transition, actor)
    return booking


def expire_overdue_bookings(db: Session, *, now: Optional[datetime] = None) -> list[int]:
    """ACTIVE bookings whose end_date has passed become EXPIRED. Returns their ids."""
    cutoff = now or _utcnow()
    ids = list(
        db.scalars(
            select(Booking.id).where(Booking.status == BOOKING_ACTIVE, Booking.end_date < cutoff)
        ).all()
    )

    expired: list[int] = []
    for bid in ids:
        res = db.execute(
            update(Booking)
            .where(Booking.id == bid, Booking.status == BOOKING_ACTIVE)
            .values(status=BOOKING_EXPIRED, expired_at=cutoff, updated_at=cutoff)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            # cancelled or converted while we were sweeping
            continue
        audit_write(
            db,
            actor_id=None,
            actor_role=SYSTEM_ROLE,
            action=BOOKING_EXPIRED,
            entity=ENTITY_BOOKING,
            entity_id=bid,
            before={"status": BOOKING_ACTIVE},
            after={"status": BOOKING_EXPIRED},
            meta={"cutoff": cutoff},
        )
        expired.append(int(bid))

    db.commit()
    if expired:
        log.info("expired %d bookings", len(expired))
    return expired
