"""HLS delivery router: master manifests, variant playlists and segments."""

import asyncio
import logging
from typing import AsyncIterator, Optional

import aiofiles
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from vodpipe.core.config import settings
from vodpipe.core.dependencies import get_stream_resolver
from vodpipe.core.exceptions import NotFoundError, PathTraversalError
from vodpipe.core.metrics import PATH_TRAVERSAL_REJECTIONS_TOTAL, STREAM_REQUESTS_TOTAL
from vodpipe.modules.stream.resolver import StreamFile, StreamResolver

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/stream", tags=["stream"])


async def _iter_file(handle, target: StreamFile, chunk_size: int) -> AsyncIterator[bytes]:
    try:
        while True:
            block = await handle.read(chunk_size)
            if not block:
                break
            yield block
    except Exception:
        # Headers are already sent; re-raising aborts the response
        logger.exception("Stream read failed", extra={"path": str(target.path)})
        raise
    finally:
        await handle.close()


async def _serve(
    resolver: StreamResolver,
    video_id: str,
    variant: Optional[str] = None,
    file_name: Optional[str] = None,
) -> StreamingResponse:
    try:
        # resolve() touches the filesystem
        target = await asyncio.to_thread(resolver.resolve, video_id, variant, file_name)
    except PathTraversalError as e:
        PATH_TRAVERSAL_REJECTIONS_TOTAL.inc()
        STREAM_REQUESTS_TOTAL.labels(kind="rejected", status_code="400").inc()
        logger.warning(
            "Path traversal rejected",
            extra={"video_id": video_id, "variant": variant, "file": file_name, "error": e.message},
        )
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid path")
    except NotFoundError:
        STREAM_REQUESTS_TOTAL.labels(kind="missing", status_code="404").inc()
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")

    # Opened before any header goes out, so an unreadable file is still a clean 500
    handle = await aiofiles.open(target.path, "rb")

    headers = {"Content-Length": str(target.size)}
    if target.cache_control:
        headers["Cache-Control"] = target.cache_control

    STREAM_REQUESTS_TOTAL.labels(kind=target.kind, status_code="200").inc()
    return StreamingResponse(
        _iter_file(handle, target, settings.STREAM_READ_CHUNK_SIZE),
        media_type=target.media_type,
        headers=headers,
        # Also closes the handle when the client leaves before the body starts
        background=BackgroundTask(handle.close),
    )


@router.get("/{video_id}/master.m3u8")
async def get_master_manifest(
    video_id: str,
    resolver: StreamResolver = Depends(get_stream_resolver),
):
    """Serve a video's master manifest."""
    return await _serve(resolver, video_id)


@router.get("/{video_id}/{variant}/{file_name}")
async def get_variant_file(
    video_id: str,
    variant: str,
    file_name: str,
    resolver: StreamResolver = Depends(get_stream_resolver),
):
    """Serve a variant playlist or media segment."""
    return await _serve(resolver, video_id, variant, file_name)
