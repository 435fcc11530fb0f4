# backend/app/workers/celery_app.py
from __future__ import annotations

from celery import Celery

from ..config import settings

celery_app = Celery(
    "keystone",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["app.workers.notification_tasks"],
)

celery_app.conf.update(
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_reject_on_worker_lost=True,
    task_track_started=True,
    task_always_eager=settings.celery_task_always_eager,
    timezone="UTC",
)

celery_app.conf.task_routes = {
    "app.workers.notification_tasks.*": {"queue": "emails"},
}
