"""Chunked upload API router."""

from typing import AsyncIterator, Optional

from fastapi import APIRouter, Body, Depends, File, Form, HTTPException, UploadFile, status

from vodpipe.core.dependencies import get_upload_service
from vodpipe.core.exceptions import PipelineError
from vodpipe.modules.upload.schemas import (
    ChunkUploadResponse,
    MergeRequest,
    MergeResponse,
    UploadInitRequest,
    UploadInitResponse,
)
from vodpipe.modules.upload.service import UploadService

router = APIRouter(prefix="/api/upload", tags=["upload"])

UPLOAD_READ_SIZE = 1024 * 1024


async def _iter_upload(upload: UploadFile) -> AsyncIterator[bytes]:
    while True:
        block = await upload.read(UPLOAD_READ_SIZE)
        if not block:
            break
        yield block


@router.post("/init", response_model=UploadInitResponse, status_code=status.HTTP_201_CREATED)
async def init_upload(
    request: Optional[UploadInitRequest] = Body(None),
    service: UploadService = Depends(get_upload_service),
):
    """Open an upload session and return its videoId."""
    record = await service.init_upload(request.file_name if request else None)
    return UploadInitResponse(video_id=record.video_id)


@router.post("/chunk", response_model=ChunkUploadResponse)
async def upload_chunk(
    video_id: str = Form(..., alias="videoId"),
    chunk_number: int = Form(..., alias="chunkNumber"),
    chunk: Optional[UploadFile] = File(None),
    service: UploadService = Depends(get_upload_service),
):
    """Store one chunk. Re-sending a chunk number replaces the stored copy."""
    if chunk is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No chunk uploaded")

    try:
        await service.upload_chunk(video_id, chunk_number, _iter_upload(chunk))
    except PipelineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    finally:
        await chunk.close()

    return ChunkUploadResponse(video_id=video_id, chunk_number=chunk_number)


@router.post("/merge", response_model=MergeResponse)
async def merge_upload(
    request: MergeRequest,
    service: UploadService = Depends(get_upload_service),
):
    """Merge chunks 1..totalChunks and queue the transcode job."""
    try:
        file_path = await service.merge(request.video_id, request.total_chunks, request.file_name)
    except PipelineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    return MergeResponse(video_id=request.video_id, file_path=file_path)
