"""Upload module for chunked video ingestion."""

from vodpipe.modules.upload.assembler import ChunkAssembler
from vodpipe.modules.upload.service import UploadService, validate_video_id

__all__ = [
    "ChunkAssembler",
    "UploadService",
    "validate_video_id",
]
