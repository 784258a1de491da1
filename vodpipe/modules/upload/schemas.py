"""Pydantic schemas for the chunked upload API.

Bodies use the camelCase names of the browser uploader (videoId, totalChunks).
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class UploadModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UploadInitRequest(UploadModel):
    file_name: Optional[str] = Field(None, max_length=255)


class UploadInitResponse(UploadModel):
    video_id: str


class ChunkUploadResponse(UploadModel):
    video_id: str
    chunk_number: int


class MergeRequest(UploadModel):
    video_id: str
    total_chunks: int
    file_name: str = Field(..., min_length=1, max_length=255)


class MergeResponse(UploadModel):
    video_id: str
    file_path: str
