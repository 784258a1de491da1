"""Upload service: session init, chunk intake and the merge hand-off to the queue."""

import logging
import os
import uuid
from typing import AsyncIterator, Optional

import aiofiles.os

from vodpipe.core.exceptions import MissingChunkError, PipelineError, UploadError, truncate_error
from vodpipe.core.metrics import CHUNK_BYTES_RECEIVED_TOTAL, CHUNKS_RECEIVED_TOTAL, MERGES_TOTAL
from vodpipe.modules.job.queue import WorkQueue
from vodpipe.modules.job.schemas import TranscodeJob
from vodpipe.modules.upload.assembler import ChunkAssembler
from vodpipe.modules.video.models import VideoStatus
from vodpipe.modules.video.schemas import VideoRecord
from vodpipe.modules.video.store import StatusStore

logger = logging.getLogger(__name__)


def validate_video_id(video_id: str) -> str:
    """Return the canonical form of a video ID.

    Raises:
        UploadError: If video_id is not a UUID
    """
    try:
        return str(uuid.UUID(str(video_id)))
    except ValueError:
        raise UploadError(f"Invalid videoId: {video_id!r}")


class UploadService:
    """Service for chunked uploads."""

    def __init__(self, store: StatusStore, assembler: ChunkAssembler, queue: WorkQueue):
        self.store = store
        self.assembler = assembler
        self.queue = queue

    async def init_upload(self, file_name: Optional[str] = None) -> VideoRecord:
        """Open an upload session and create its record with status uploaded."""
        video_id = str(uuid.uuid4())
        record = await self.store.create(
            VideoRecord(
                video_id=video_id,
                original_file_name=os.path.basename(file_name) if file_name else None,
                status=VideoStatus.UPLOADED,
            )
        )
        logger.info(
            "Upload session created",
            extra={"video_id": video_id, "file_name": record.original_file_name},
        )
        return record

    async def upload_chunk(
        self,
        video_id: str,
        chunk_number: int,
        parts: AsyncIterator[bytes],
    ) -> int:
        """Store one chunk. No record state changes; a failure is request-level only.

        Returns:
            Bytes written

        Raises:
            UploadError: Invalid video ID, chunk number or empty payload
        """
        video_id = validate_video_id(video_id)
        if chunk_number < 1:
            raise UploadError(f"Invalid chunkNumber: {chunk_number}")

        path = await self.assembler.write_chunk_stream(video_id, chunk_number, parts)
        size = await aiofiles.os.path.getsize(path)
        CHUNKS_RECEIVED_TOTAL.inc()
        CHUNK_BYTES_RECEIVED_TOTAL.inc(size)
        return size

    async def merge(self, video_id: str, total_chunks: int, file_name: str) -> str:
        """Merge all chunks and enqueue the transcode job.

        Returns:
            Path of the merged source file

        Raises:
            NotFoundError: Unknown video ID
            InvalidStatusTransitionError: Video already merged or finished
            MissingChunkError: A declared chunk is absent (record set to failed)
        """
        video_id = validate_video_id(video_id)
        # Raises NotFoundError before any state change
        await self.store.get(video_id)
        await self.store.update_by_video_id(video_id, status=VideoStatus.MERGING)
        logger.info(
            "Merge started",
            extra={"video_id": video_id, "total_chunks": total_chunks, "file_name": file_name},
        )

        try:
            final_path = await self.assembler.merge(video_id, total_chunks, file_name)
            await self.store.update_by_video_id(
                video_id, original_file_name=os.path.basename(file_name)
            )
            job = TranscodeJob(video_id=video_id, input_file=str(final_path))
            job_id = await self.queue.enqueue(job)
        except Exception as e:
            message = e.message if isinstance(e, PipelineError) else (str(e) or type(e).__name__)
            result = "missing_chunk" if isinstance(e, MissingChunkError) else "failed"
            MERGES_TOTAL.labels(result=result).inc()
            logger.error(
                "Merge failed",
                extra={"video_id": video_id, "error": message},
                exc_info=not isinstance(e, PipelineError),
            )
            await self.store.update_by_video_id(
                video_id, status=VideoStatus.FAILED, error=truncate_error(message)
            )
            raise

        MERGES_TOTAL.labels(result="success").inc()
        logger.info(
            "Merge finished",
            extra={"video_id": video_id, "final_path": str(final_path), "job_id": job_id},
        )
        return str(final_path)
