# backend/backoffice/workers/notification_tasks.py
from __future__ import annotations

import logging
from typing import Optional

from ..services.notifications import deliver_in_new_session
from .celery_app import celery_app

log = logging.getLogger("backoffice.workers.notifications")


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=10,
    name="backoffice.workers.notification_tasks.deliver_notification",
)
def deliver_notification(
    self,
    recipient_id: int,
    type_: str,
    related_property_id: Optional[int] = None,
    related_booking_id: Optional[int] = None,
    property_code: Optional[str] = None,
    sender_id: Optional[int] = None,
) -> dict:
    try:
        deliver_in_new_session(
            recipient_id=recipient_id,
            type_=type_,
            related_property_id=related_property_id,
            related_booking_id=related_booking_id,
            property_code=property_code,
            sender_id=sender_id,
        )
    except Exception as exc:
        log.warning("notification delivery failed; retrying", extra={"user_id": recipient_id, "action": type_})
        raise self.retry(exc=exc)
    return {"ok": True, "recipient_id": recipient_id, "type": type_}
