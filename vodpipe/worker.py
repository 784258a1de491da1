"""Transcode worker entry point.

Run with:
    celery -A vodpipe.worker worker -Q transcode --concurrency 1

Each delivered job runs TranscodeWorker in a fresh event loop, so the
database engine is switched to NullPool before first use.
"""

import asyncio
import logging

from celery.signals import worker_ready

from vodpipe.core.celery_app import celery_app
from vodpipe.core.config import settings
from vodpipe.core.database import init_models
from vodpipe.core.logging import setup_logging
from vodpipe.core.tracing import setup_tracing
from vodpipe.modules.job.queue import CeleryWorkQueue
from vodpipe.modules.transcoding.worker import register_transcode_handler
from vodpipe.modules.video.store import create_status_store

logger = logging.getLogger(__name__)

settings.DATABASE_NULL_POOL = True

setup_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON, include_stack_trace=True)
setup_tracing(
    service_name=f"{settings.PROJECT_NAME}-worker",
    service_version=settings.VERSION,
    environment="development" if settings.DEBUG else "production",
    otlp_endpoint=settings.OTLP_ENDPOINT,
    enable_console_export=settings.DEBUG,
)

transcode_queue = CeleryWorkQueue(celery_app, settings.TRANSCODE_QUEUE_NAME)
register_transcode_handler(transcode_queue, create_status_store(settings), settings)


@worker_ready.connect
def _create_tables(**kwargs) -> None:
    if settings.STATUS_STORE_BACKEND.lower() == "database":
        asyncio.run(init_models())
        logger.info("Database tables ready")
