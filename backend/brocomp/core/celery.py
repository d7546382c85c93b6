"""Celery app for notification emails and security alerts."""

from celery import Celery

from brocomp.core.config import settings

celery_app = Celery(
    "brocomp",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Tasks are single HTTP calls to Resend.
    task_time_limit=60,
    task_soft_time_limit=45,
    task_track_started=True,
    result_expires=24 * 3600,

    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,

    task_routes={
        "brocomp.workers.notifications.*": {"queue": "notifications"},
    },
    task_default_queue="default",
)

# Registers the tasks; imported last because the worker module imports celery_app.
import brocomp.workers.notifications  # noqa: F401, E402
