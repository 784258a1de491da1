"""Transcode worker: runs the bitrate ladder for one job and records the outcome.

For each job:
1. status -> transcoding
2. encode every ladder variant (sequential, or bounded-parallel with
   fanout > 1); the first failing variant aborts the rest
3. write the master manifest
4. best-effort duration probe and thumbnail
5. status -> ready with hls_path, or failed with the captured error

Variant directories already produced by an aborted ladder stay on disk.
"""

import asyncio
import logging
import os
import time
from typing import Any, Optional, Sequence

import aiofiles.os

from vodpipe.core.config import Settings
from vodpipe.core.exceptions import PipelineError, TranscodeError, truncate_error
from vodpipe.core.logging import correlation_scope
from vodpipe.core.metrics import (
    TRANSCODE_JOBS_IN_PROGRESS,
    TRANSCODE_JOBS_TOTAL,
    VARIANT_ENCODE_DURATION_SECONDS,
    VARIANT_ENCODE_FAILURES_TOTAL,
)
from vodpipe.core.tracing import add_span_attributes, create_span, record_exception
from vodpipe.modules.job.queue import WorkQueue
from vodpipe.modules.job.schemas import TranscodeJob
from vodpipe.modules.transcoding.ffmpeg import EncodeProgress, FFmpegTranscoder
from vodpipe.modules.transcoding.ladder import DEFAULT_LADDER, VariantSpec
from vodpipe.modules.transcoding.manifest import write_master_manifest
from vodpipe.modules.video.models import VideoStatus
from vodpipe.modules.video.store import StatusStore

logger = logging.getLogger(__name__)


class TranscodeWorker:
    """Job handler turning one merged upload into an HLS ladder."""

    def __init__(
        self,
        store: StatusStore,
        transcoder: FFmpegTranscoder,
        hls_root: str,
        thumbnails_dir: Optional[str] = None,
        ladder: Sequence[VariantSpec] = DEFAULT_LADDER,
        fanout: int = 1,
        thumbnail_at_seconds: float = 3.0,
    ):
        if fanout < 1:
            raise ValueError("fanout must be at least 1")
        self.store = store
        self.transcoder = transcoder
        self.hls_root = str(hls_root)
        self.thumbnails_dir = str(thumbnails_dir) if thumbnails_dir else None
        self.ladder = tuple(ladder)
        self.fanout = fanout
        self.thumbnail_at_seconds = thumbnail_at_seconds

    @classmethod
    def from_settings(
        cls,
        store: StatusStore,
        settings: Settings,
        transcoder: Optional[FFmpegTranscoder] = None,
    ) -> "TranscodeWorker":
        return cls(
            store=store,
            transcoder=transcoder or FFmpegTranscoder.from_settings(settings),
            hls_root=str(settings.hls_dir),
            thumbnails_dir=str(settings.thumbnails_dir),
            fanout=settings.LADDER_FANOUT,
            thumbnail_at_seconds=settings.THUMBNAIL_AT_SECONDS,
        )

    async def __call__(self, job: TranscodeJob) -> dict[str, Any]:
        return await self.process(job)

    def output_dir(self, video_id: str) -> str:
        return os.path.join(self.hls_root, video_id)

    async def process(self, job: TranscodeJob) -> dict[str, Any]:
        """Process one job.

        Handled failures are recorded on the video record and reported in the
        returned dict; only a failure to record the outcome itself propagates.
        """
        video_id = job.video_id
        with correlation_scope(video_id), create_span(
            "transcode.job", {"video.id": video_id, "ladder.size": len(self.ladder)}
        ):
            record = await self.store.find_by_video_id(video_id)
            if record is None:
                logger.warning("Job for unknown video skipped", extra={"video_id": video_id})
                TRANSCODE_JOBS_TOTAL.labels(result="skipped").inc()
                return {"video_id": video_id, "status": "skipped"}
            if record.is_terminal():
                # Redelivery of a job that already finished
                logger.info(
                    "Job for finished video skipped",
                    extra={"video_id": video_id, "status": record.status.value},
                )
                TRANSCODE_JOBS_TOTAL.labels(result="skipped").inc()
                return {"video_id": video_id, "status": "skipped"}

            logger.info(
                "Transcode job started",
                extra={"video_id": video_id, "input_file": job.input_file, "fanout": self.fanout},
            )
            TRANSCODE_JOBS_IN_PROGRESS.inc()
            started = time.monotonic()
            try:
                await self.store.update_by_video_id(video_id, status=VideoStatus.TRANSCODING)
                result = await self._transcode(job)
                await self.store.update_by_video_id(
                    video_id,
                    status=VideoStatus.READY,
                    hls_path=result["hls_path"],
                    error=None,
                    duration=result["duration"],
                    thumbnail=result["thumbnail"],
                )
            except Exception as e:
                message = truncate_error(_error_message(e))
                record_exception(e)
                logger.error(
                    "Transcode job failed",
                    extra={"video_id": video_id, "error": message},
                    exc_info=not isinstance(e, PipelineError),
                )
                await self.store.update_by_video_id(
                    video_id, status=VideoStatus.FAILED, error=message
                )
                TRANSCODE_JOBS_TOTAL.labels(result="failed").inc()
                return {"video_id": video_id, "status": VideoStatus.FAILED.value, "error": message}
            finally:
                TRANSCODE_JOBS_IN_PROGRESS.dec()

            TRANSCODE_JOBS_TOTAL.labels(result="ready").inc()
            logger.info(
                "Transcode job ready",
                extra={
                    "video_id": video_id,
                    "hls_path": result["hls_path"],
                    "elapsed_seconds": round(time.monotonic() - started, 3),
                },
            )
            return {"video_id": video_id, "status": VideoStatus.READY.value, **result}

    async def _transcode(self, job: TranscodeJob) -> dict[str, Any]:
        if not await aiofiles.os.path.isfile(job.input_file):
            raise TranscodeError(f"Input file not found: {job.input_file}")

        output_dir = self.output_dir(job.video_id)
        await aiofiles.os.makedirs(output_dir, exist_ok=True)

        await self._encode_ladder(job, output_dir)

        hls_path = await write_master_manifest(output_dir, self.ladder)
        logger.info("Master manifest written", extra={"video_id": job.video_id, "hls_path": hls_path})

        return {
            "hls_path": hls_path,
            "duration": await self._probe_duration(job),
            "thumbnail": await self._extract_thumbnail(job),
        }

    async def _encode_ladder(self, job: TranscodeJob, output_dir: str) -> None:
        if self.fanout == 1:
            for variant in self.ladder:
                await self._encode_variant(job, output_dir, variant)
            return

        semaphore = asyncio.Semaphore(self.fanout)

        async def bounded(variant: VariantSpec) -> None:
            async with semaphore:
                await self._encode_variant(job, output_dir, variant)

        tasks = [asyncio.create_task(bounded(variant)) for variant in self.ladder]
        try:
            for next_done in asyncio.as_completed(tasks):
                await next_done
        finally:
            # First failure cancels the rest; cancelled encodes kill their ffmpeg
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _encode_variant(
        self,
        job: TranscodeJob,
        output_dir: str,
        variant: VariantSpec,
    ) -> None:
        variant_dir = os.path.join(output_dir, variant.name)
        with create_span(
            "transcode.variant",
            {"video.id": job.video_id, "variant.name": variant.name, "variant.bitrate": variant.video_bitrate},
        ):
            logger.info("Variant encode started", extra={"video_id": job.video_id, "variant": variant.name})
            started = time.monotonic()

            result = await self.transcoder.encode_variant(
                job.input_file, variant_dir, variant, progress_callback=self._log_progress
            )

            elapsed = time.monotonic() - started
            VARIANT_ENCODE_DURATION_SECONDS.labels(variant=variant.name).observe(elapsed)
            add_span_attributes({"encode.returncode": result.returncode})

            if not result.success:
                VARIANT_ENCODE_FAILURES_TOTAL.labels(variant=variant.name).inc()
                logger.error(
                    "Variant encode failed, aborting ladder",
                    extra={
                        "video_id": job.video_id,
                        "variant": variant.name,
                        "returncode": result.returncode,
                    },
                )
                raise TranscodeError(result.error_message, variant=variant.name)

            logger.info(
                "Variant encode finished",
                extra={
                    "video_id": job.video_id,
                    "variant": variant.name,
                    "elapsed_seconds": round(elapsed, 3),
                },
            )

    def _log_progress(self, progress: EncodeProgress) -> None:
        logger.debug(
            "Encode progress",
            extra={
                "variant": progress.variant,
                "out_time_seconds": progress.out_time_seconds,
                "frame": progress.frame,
                "speed": progress.speed,
                "finished": progress.finished,
            },
        )

    async def _probe_duration(self, job: TranscodeJob) -> Optional[float]:
        try:
            return await self.transcoder.probe_duration(job.input_file)
        except TranscodeError as e:
            logger.warning("Duration probe failed", extra={"video_id": job.video_id, "error": e.message})
            return None

    async def _extract_thumbnail(self, job: TranscodeJob) -> Optional[str]:
        if self.thumbnails_dir is None:
            return None
        file_name = f"{job.video_id}.jpg"
        try:
            await self.transcoder.extract_thumbnail(
                job.input_file,
                os.path.join(self.thumbnails_dir, file_name),
                at_seconds=self.thumbnail_at_seconds,
            )
        except TranscodeError as e:
            logger.warning("Thumbnail extraction failed", extra={"video_id": job.video_id, "error": e.message})
            return None
        # Served under the /thumbnails static mount
        return f"thumbnails/{file_name}"


def _error_message(exc: Exception) -> str:
    if isinstance(exc, PipelineError):
        return exc.message
    return str(exc) or type(exc).__name__


def register_transcode_handler(
    queue: WorkQueue,
    store: StatusStore,
    settings: Settings,
    transcoder: Optional[FFmpegTranscoder] = None,
) -> TranscodeWorker:
    """Wire a TranscodeWorker as the queue's job handler."""
    worker = TranscodeWorker.from_settings(store, settings, transcoder=transcoder)
    queue.register_handler(worker)
    return worker
