"""Tests for the work queue backends.

The local queue delivers FIFO with one consumer, bounds parallel handlers
to its concurrency, and survives handler exceptions.
"""

import asyncio
from unittest.mock import MagicMock

import pytest
from celery import Celery
from hypothesis import given, settings, strategies as st

from vodpipe.core.config import Settings
from vodpipe.modules.job.queue import (
    TRANSCODE_TASK_NAME,
    CeleryWorkQueue,
    LocalWorkQueue,
    create_work_queue,
)
from vodpipe.modules.job.schemas import TranscodeJob, job_id_for


def make_job(n: int) -> TranscodeJob:
    return TranscodeJob(video_id=f"video-{n}", input_file=f"uploads/final/{n}.mp4")


class TestLocalWorkQueue:

    @given(count=st.integers(min_value=1, max_value=30))
    @settings(max_examples=50, deadline=None)
    def test_single_consumer_is_fifo(self, count: int) -> None:
        """For any sequence of enqueued jobs, one consumer SHALL handle them in order."""
        handled = []

        async def run():
            queue = LocalWorkQueue(concurrency=1)

            async def handler(job):
                await asyncio.sleep(0)
                handled.append(job.video_id)

            queue.register_handler(handler)
            for n in range(count):
                await queue.enqueue(make_job(n))
            await queue.start()
            await queue.join()
            await queue.stop()

        asyncio.run(run())

        assert handled == [f"video-{n}" for n in range(count)]

    @pytest.mark.asyncio
    async def test_concurrency_bounds_parallel_handlers(self) -> None:
        queue = LocalWorkQueue(concurrency=3)
        active = 0
        peak = 0

        async def handler(job):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1

        queue.register_handler(handler)
        await queue.start()
        for n in range(10):
            await queue.enqueue(make_job(n))
        await queue.join()
        await queue.stop()

        assert peak == 3

    @pytest.mark.asyncio
    async def test_handler_exception_does_not_stop_consumer(self) -> None:
        queue = LocalWorkQueue()
        handled = []

        async def handler(job):
            if job.video_id == "video-0":
                raise RuntimeError("boom")
            handled.append(job.video_id)

        queue.register_handler(handler)
        await queue.start()
        await queue.enqueue(make_job(0))
        await queue.enqueue(make_job(1))
        await queue.join()
        await queue.stop()

        assert handled == ["video-1"]
        assert not queue.running

    @pytest.mark.asyncio
    async def test_enqueue_returns_job_id(self) -> None:
        queue = LocalWorkQueue()

        assert await queue.enqueue(make_job(7)) == job_id_for("video-7")
        assert queue.qsize() == 1

    @pytest.mark.asyncio
    async def test_start_without_handler_fails(self) -> None:
        with pytest.raises(RuntimeError):
            await LocalWorkQueue().start()

    def test_concurrency_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            LocalWorkQueue(concurrency=0)


class TestCeleryWorkQueue:

    def make_queue(self) -> CeleryWorkQueue:
        app = Celery("test", broker="memory://", backend="cache+memory://")
        return CeleryWorkQueue(app, "transcode")

    @pytest.mark.asyncio
    async def test_enqueue_publishes_with_video_task_id(self) -> None:
        queue = self.make_queue()
        queue.task = MagicMock()
        job = make_job(3)

        job_id = await queue.enqueue(job)

        assert job_id == "transcode-video-3"
        queue.task.apply_async.assert_called_once_with(
            args=[{"video_id": "video-3", "input_file": "uploads/final/3.mp4"}],
            task_id="transcode-video-3",
            queue="transcode",
        )

    def test_task_registered_with_late_ack(self) -> None:
        queue = self.make_queue()

        task = queue.app.tasks[TRANSCODE_TASK_NAME]
        assert task.acks_late is True
        assert task.reject_on_worker_lost is True

    def test_execute_runs_handler(self) -> None:
        queue = self.make_queue()
        seen = []

        async def handler(job):
            seen.append(job)
            return {"video_id": job.video_id, "status": "ready"}

        queue.register_handler(handler)

        result = queue.execute({"video_id": "video-1", "input_file": "uploads/final/1.mp4"})

        assert result == {"video_id": "video-1", "status": "ready"}
        assert seen == [make_job(1)]

    def test_execute_without_handler_fails(self) -> None:
        with pytest.raises(RuntimeError):
            self.make_queue().execute({"video_id": "v", "input_file": "f"})


def test_factory_selects_backend() -> None:
    queue = create_work_queue(Settings(QUEUE_BACKEND="local", TRANSCODE_CONCURRENCY=2))
    assert isinstance(queue, LocalWorkQueue)
    assert queue.concurrency == 2

    with pytest.raises(ValueError):
        create_work_queue(Settings(QUEUE_BACKEND="sqs"))
