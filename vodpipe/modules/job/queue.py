"""Work queue delivering transcode jobs to a registered handler.

Both backends deliver FIFO per queue, at least once. Handlers must be
safe to re-run for the same job.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional

from celery import Celery

from vodpipe.core.config import Settings
from vodpipe.modules.job.schemas import TranscodeJob, job_id_for

logger = logging.getLogger(__name__)

JobHandler = Callable[[TranscodeJob], Awaitable[Any]]

TRANSCODE_TASK_NAME = "vodpipe.transcode"


class WorkQueue(ABC):
    """Queue interface injected into the upload service and the worker."""

    def __init__(self):
        self._handler: Optional[JobHandler] = None

    def register_handler(self, handler: JobHandler) -> None:
        """Set the coroutine function that processes each delivered job."""
        self._handler = handler

    @property
    def handler(self) -> JobHandler:
        if self._handler is None:
            raise RuntimeError("No job handler registered")
        return self._handler

    @abstractmethod
    async def enqueue(self, job: TranscodeJob) -> str:
        """Append a job and return its job ID."""

    async def start(self) -> None:
        """Begin delivering jobs (no-op where an external worker consumes)."""

    async def stop(self) -> None:
        """Stop delivering jobs."""


class LocalWorkQueue(WorkQueue):
    """In-process asyncio queue with N consumer tasks.

    Not durable: queued jobs are lost when the process exits. Used for
    development and tests.
    """

    def __init__(self, concurrency: int = 1):
        super().__init__()
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.concurrency = concurrency
        self._queue: asyncio.Queue[TranscodeJob] = asyncio.Queue()
        self._consumers: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._consumers)

    def qsize(self) -> int:
        return self._queue.qsize()

    async def enqueue(self, job: TranscodeJob) -> str:
        await self._queue.put(job)
        job_id = job_id_for(job.video_id)
        logger.info(
            "Job enqueued",
            extra={"job_id": job_id, "video_id": job.video_id, "backend": "local"},
        )
        return job_id

    async def start(self) -> None:
        if self.running:
            return
        handler = self.handler
        self._consumers = [
            asyncio.create_task(self._consume(handler), name=f"transcode-consumer-{i}")
            for i in range(self.concurrency)
        ]

    async def join(self) -> None:
        """Wait until every queued job has been processed."""
        await self._queue.join()

    async def stop(self) -> None:
        for task in self._consumers:
            task.cancel()
        await asyncio.gather(*self._consumers, return_exceptions=True)
        self._consumers = []

    async def _consume(self, handler: JobHandler) -> None:
        while True:
            job = await self._queue.get()
            try:
                await handler(job)
            except Exception:
                # One bad job must not take the consumer down with it
                logger.exception(
                    "Job handler raised",
                    extra={"job_id": job_id_for(job.video_id), "video_id": job.video_id},
                )
            finally:
                self._queue.task_done()


class CeleryWorkQueue(WorkQueue):
    """Durable queue on Celery over Redis.

    The producer side (API process) only calls enqueue(); the worker process
    registers the handler, and each delivery runs it in a fresh event loop.
    """

    def __init__(self, app: Celery, queue_name: str):
        super().__init__()
        self.app = app
        self.queue_name = queue_name

        def run_transcode(payload: dict) -> Any:
            return self.execute(payload)

        self.task = app.task(
            name=TRANSCODE_TASK_NAME,
            acks_late=True,
            reject_on_worker_lost=True,
            shared=False,
        )(run_transcode)

    async def enqueue(self, job: TranscodeJob) -> str:
        job_id = job_id_for(job.video_id)
        # apply_async talks to the broker synchronously
        await asyncio.to_thread(
            self.task.apply_async,
            args=[job.model_dump()],
            task_id=job_id,
            queue=self.queue_name,
        )
        logger.info(
            "Job enqueued",
            extra={"job_id": job_id, "video_id": job.video_id, "backend": "celery"},
        )
        return job_id

    def execute(self, payload: dict) -> Any:
        """Run the registered handler for one delivered job."""
        job = TranscodeJob.model_validate(payload)
        return asyncio.run(self.handler(job))


def create_work_queue(settings: Settings) -> WorkQueue:
    """Build the work queue selected by QUEUE_BACKEND."""
    backend = settings.QUEUE_BACKEND.lower()
    if backend == "local":
        return LocalWorkQueue(concurrency=settings.TRANSCODE_CONCURRENCY)
    if backend == "celery":
        from vodpipe.core.celery_app import celery_app

        return CeleryWorkQueue(celery_app, settings.TRANSCODE_QUEUE_NAME)
    raise ValueError(f"Unknown QUEUE_BACKEND: {settings.QUEUE_BACKEND}")
