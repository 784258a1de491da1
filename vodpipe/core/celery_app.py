"""Celery application configuration."""

from celery import Celery

from vodpipe.core.config import settings

celery_app = Celery(
    "vodpipe",
    broker=settings.broker_url,
    backend=settings.result_backend,
)

# acks_late + reject_on_worker_lost gives at-least-once delivery: a job whose
# worker dies mid-encode goes back to the broker instead of being lost.
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_default_queue=settings.TRANSCODE_QUEUE_NAME,
    worker_prefetch_multiplier=1,
    worker_concurrency=settings.TRANSCODE_CONCURRENCY,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
)
