# backend/backoffice/workers/booking_tasks.py
from __future__ import annotations

from ..db import session_scope
from ..services.booking_guard import expire_overdue_bookings as _expire
from .celery_app import celery_app


@celery_app.task(name="backoffice.workers.booking_tasks.expire_overdue_bookings")
def expire_overdue_bookings() -> dict:
    """Periodic sweep: ACTIVE bookings past end_date become EXPIRED."""
    with session_scope() as db:
        expired = _expire(db)
    return {"ok": True, "expired": len(expired)}
