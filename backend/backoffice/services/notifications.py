# backend/backoffice/services/notifications.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from ..config import settings
from ..db import session_scope
from ..models import Notification

log = logging.getLogger("backoffice.notifications")

TEMPLATES: dict[str, tuple[str, str]] = {
    "property_approved": ("Property approved", "Property {code} was approved and is now active."),
    "property_rejected": ("Property rejected", "Property {code} was rejected."),
    "property_sold": ("Property sold", "Property {code} was marked as sold."),
    "property_archived": ("Property archived", "Property {code} was archived."),
    "approval_request": ("Approval requested", "Property {code} is waiting for your review."),
    "booking_confirmed": ("Booking created", "A booking was created for property {code}."),
    "booking_cancelled": ("Booking cancelled", "A booking for property {code} was cancelled."),
}


def _render(type_: str, code: Optional[str]) -> tuple[str, str]:
    title, message = TEMPLATES.get(type_, (type_.replace("_", " ").capitalize(), "{code}"))
    return title, message.format(code=code or "-")


def deliver(
    db: Session,
    *,
    recipient_id: int,
    type_: str,
    related_property_id: Optional[int] = None,
    related_booking_id: Optional[int] = None,
    property_code: Optional[str] = None,
    sender_id: Optional[int] = None,
) -> Notification:
    title, message = _render(type_, property_code)
    row = Notification(
        recipient_id=int(recipient_id),
        sender_id=sender_id,
        type=type_,
        title=title,
        message=message,
        related_property_id=related_property_id,
        related_booking_id=related_booking_id,
        created_at=datetime.utcnow(),
    )
    db.add(row)
    db.commit()
    return row


def deliver_in_new_session(**kwargs) -> None:
    with session_scope() as db:
        deliver(db, **kwargs)


def notify(
    recipient_id: Optional[int],
    type_: str,
    related_property_id: Optional[int] = None,
    *,
    related_booking_id: Optional[int] = None,
    property_code: Optional[str] = None,
    sender_id: Optional[int] = None,
) -> bool:
    """
    Fire-and-forget notification request.

    Called after the business transaction has committed. Any failure is
    logged and reported as False; it never reaches the caller's response.
    """
    if recipient_id is None:
        return False

    kwargs = {
        "recipient_id": int(recipient_id),
        "type_": type_,
        "related_property_id": related_property_id,
        "related_booking_id": related_booking_id,
        "property_code": property_code,
        "sender_id": sender_id,
    }
    try:
        if settings.celery_broker_url:
            from ..workers.notification_tasks import deliver_notification

            deliver_notification.delay(**kwargs)
        else:
            deliver_in_new_session(**kwargs)
        return True
    except Exception:
        log.exception(
            "notification dispatch failed",
            extra={"user_id": recipient_id, "property_id": related_property_id, "action": type_},
        )
        return False


def notify_many(recipients: Iterable[Optional[int]], type_: str, **kwargs) -> int:
    """Notify each distinct recipient once; returns how many were dispatched."""
    seen: set[int] = set()
    sent = 0
    for r in recipients:
        if r is None or int(r) in seen:
            continue
        seen.add(int(r))
        if notify(r, type_, **kwargs):
            sent += 1
    return sent
