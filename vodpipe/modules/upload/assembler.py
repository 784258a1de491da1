"""Chunk assembler: stores numbered chunks and merges them into one file.

Staging layout is <chunks_dir>/<video_id>/<n>.part. A chunk file exists
only once its bytes were fully written; writes go to a temp file first and
are renamed into place, so a retried chunk simply replaces the old one.
"""

import asyncio
import logging
import os
import shutil
import uuid
from pathlib import Path
from typing import AsyncIterator, Union

import aiofiles
import aiofiles.os

from vodpipe.core.exceptions import MissingChunkError, UploadError

logger = logging.getLogger(__name__)

# Read size while concatenating chunks
MERGE_READ_SIZE = 1024 * 1024


class ChunkAssembler:
    """Persists uploaded chunks per video and merges them in order."""

    def __init__(self, chunks_dir: Union[str, Path], final_dir: Union[str, Path]):
        self.chunks_dir = Path(chunks_dir)
        self.final_dir = Path(final_dir)

    def staging_dir(self, video_id: str) -> Path:
        return self.chunks_dir / video_id

    def chunk_path(self, video_id: str, sequence_number: int) -> Path:
        return self.staging_dir(video_id) / f"{sequence_number}.part"

    async def write_chunk(self, video_id: str, sequence_number: int, data: bytes) -> Path:
        """Store one chunk, replacing any earlier copy of the same sequence number.

        Raises:
            UploadError: If the payload is empty or the sequence number is invalid
        """
        if not data:
            raise UploadError("Chunk payload is empty")

        async def single() -> AsyncIterator[bytes]:
            yield data

        return await self.write_chunk_stream(video_id, sequence_number, single())

    async def write_chunk_stream(
        self,
        video_id: str,
        sequence_number: int,
        parts: AsyncIterator[bytes],
    ) -> Path:
        """Store one chunk from an async byte stream."""
        if sequence_number < 1:
            raise UploadError(f"Invalid chunk number: {sequence_number}")

        path = self.chunk_path(video_id, sequence_number)
        await aiofiles.os.makedirs(path.parent, exist_ok=True)
        # Unique temp name so concurrent retries of one chunk never share a file
        temp_path = path.with_name(f"{path.name}.{uuid.uuid4().hex}.tmp")

        written = 0
        try:
            async with aiofiles.open(temp_path, "wb") as f:
                async for part in parts:
                    await f.write(part)
                    written += len(part)
            if written == 0:
                raise UploadError("Chunk payload is empty")
            await aiofiles.os.replace(temp_path, path)
        finally:
            if await aiofiles.os.path.exists(temp_path):
                await aiofiles.os.remove(temp_path)

        logger.debug(
            "Chunk stored",
            extra={"video_id": video_id, "chunk_number": sequence_number, "bytes": written},
        )
        return path

    async def merge(self, video_id: str, total_chunks: int, destination_file_name: str) -> Path:
        """Concatenate chunks 1..total_chunks into final_dir/destination_file_name.

        Only checks that every expected chunk file exists; the client is
        trusted to have finished uploading before calling merge.

        Raises:
            MissingChunkError: At the first absent sequence number
            UploadError: If the destination name is unusable
        """
        if total_chunks < 1:
            raise MissingChunkError(video_id, 1)

        file_name = os.path.basename(destination_file_name or "")
        if file_name in ("", ".", ".."):
            raise UploadError(f"Invalid file name: {destination_file_name!r}")

        for sequence_number in range(1, total_chunks + 1):
            if not await aiofiles.os.path.isfile(self.chunk_path(video_id, sequence_number)):
                raise MissingChunkError(video_id, sequence_number)

        await aiofiles.os.makedirs(self.final_dir, exist_ok=True)
        final_path = await self._claim_destination(video_id, file_name)
        temp_path = final_path.with_name(f"{final_path.name}.{uuid.uuid4().hex}.tmp")

        total_bytes = 0
        merged = False
        try:
            async with aiofiles.open(temp_path, "wb") as out:
                for sequence_number in range(1, total_chunks + 1):
                    async with aiofiles.open(self.chunk_path(video_id, sequence_number), "rb") as part:
                        while True:
                            block = await part.read(MERGE_READ_SIZE)
                            if not block:
                                break
                            await out.write(block)
                            total_bytes += len(block)
            await aiofiles.os.replace(temp_path, final_path)
            merged = True
        finally:
            if await aiofiles.os.path.exists(temp_path):
                await aiofiles.os.remove(temp_path)
            if not merged and await aiofiles.os.path.exists(final_path):
                # Release the reserved name
                await aiofiles.os.remove(final_path)

        await asyncio.to_thread(shutil.rmtree, self.staging_dir(video_id), True)
        logger.info(
            "Chunks merged",
            extra={
                "video_id": video_id,
                "total_chunks": total_chunks,
                "bytes": total_bytes,
                "final_path": str(final_path),
            },
        )
        return final_path

    async def _claim_destination(self, video_id: str, file_name: str) -> Path:
        """Reserve final_dir/file_name with an exclusive create.

        When another upload already holds that name, the merged file goes to
        final_dir/<video_id>_<file_name> so neither source is overwritten.
        """
        final_path = self.final_dir / file_name
        try:
            async with aiofiles.open(final_path, "xb"):
                pass
        except FileExistsError:
            fallback = self.final_dir / f"{video_id}_{file_name}"
            logger.warning(
                "Merged file name already taken, using video-scoped name",
                extra={"video_id": video_id, "file_name": file_name, "final_path": str(fallback)},
            )
            return fallback
        return final_path
