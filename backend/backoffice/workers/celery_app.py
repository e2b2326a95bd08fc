# backend/backoffice/workers/celery_app.py
from __future__ import annotations

from celery import Celery
from celery.schedules import crontab

from ..config import settings

BROKER = settings.celery_broker_url or "redis://localhost:6379/0"
BACKEND = settings.celery_result_backend or "redis://localhost:6379/1"

celery_app = Celery(
    "backoffice",
    broker=BROKER,
    backend=BACKEND,
    include=[
        "backoffice.workers.notification_tasks",
        "backoffice.workers.booking_tasks",
    ],
)

celery_app.conf.update(
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_reject_on_worker_lost=True,
    task_track_started=True,
    timezone="UTC",
)

celery_app.conf.task_routes = {
    "backoffice.workers.notification_tasks.*": {"queue": "notifications"},
    "backoffice.workers.booking_tasks.*": {"queue": "maintenance"},
}

celery_app.conf.beat_schedule = {
    "expire-overdue-bookings": {
        "task": "backoffice.workers.booking_tasks.expire_overdue_bookings",
        "schedule": crontab(minute="*/15"),
    },
}
