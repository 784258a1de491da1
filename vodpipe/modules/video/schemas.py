"""Pydantic schemas for video records."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from vodpipe.modules.video.models import VideoStatus


class VideoRecord(BaseModel):
    """A video's lifecycle document as returned by the status store.

    Serialized in camelCase (videoId, hlsPath, ...) for the playback client.
    """

    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    video_id: str
    original_file_name: Optional[str] = None
    status: VideoStatus = VideoStatus.UPLOADED
    hls_path: Optional[str] = None
    error: Optional[str] = None
    duration: Optional[float] = None
    thumbnail: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def is_terminal(self) -> bool:
        return self.status in (VideoStatus.READY, VideoStatus.FAILED)
