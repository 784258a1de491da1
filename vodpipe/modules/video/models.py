"""Video record model and lifecycle state machine.

A video moves uploaded -> merging -> transcoding -> ready | failed.
Every status write goes through check_update(), so both status store
backends reject the same transitions.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from sqlalchemy import DateTime, Float, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from vodpipe.core.database import Base
from vodpipe.core.exceptions import InvalidStatusTransitionError


class VideoStatus(str, Enum):
    """Lifecycle status of an uploaded video."""

    UPLOADED = "uploaded"
    MERGING = "merging"
    TRANSCODING = "transcoding"
    READY = "ready"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({VideoStatus.READY, VideoStatus.FAILED})

# transcoding -> transcoding lets a redelivered job resume after a worker crash
ALLOWED_TRANSITIONS: dict[VideoStatus, frozenset[VideoStatus]] = {
    VideoStatus.UPLOADED: frozenset({VideoStatus.MERGING, VideoStatus.FAILED}),
    VideoStatus.MERGING: frozenset({VideoStatus.TRANSCODING, VideoStatus.FAILED}),
    VideoStatus.TRANSCODING: frozenset(
        {VideoStatus.TRANSCODING, VideoStatus.READY, VideoStatus.FAILED}
    ),
    VideoStatus.READY: frozenset(),
    VideoStatus.FAILED: frozenset(),
}

# Fields a caller may write through update_by_video_id
UPDATABLE_FIELDS = frozenset(
    {"status", "original_file_name", "hls_path", "error", "duration", "thumbnail"}
)


def can_transition(current: VideoStatus, new: VideoStatus) -> bool:
    """Check whether the lifecycle allows moving from current to new."""
    return new in ALLOWED_TRANSITIONS[current]


def check_update(current: VideoStatus, fields: dict[str, Any]) -> None:
    """Validate an update against the lifecycle rules.

    - status changes must follow ALLOWED_TRANSITIONS
    - ready needs a non-empty hls_path, failed needs a non-empty error
    - hls_path is only ever written together with ready
    - a non-null error is only ever written together with failed

    Raises:
        InvalidStatusTransitionError: If any rule is broken
    """
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise InvalidStatusTransitionError(f"Fields not updatable: {sorted(unknown)}")

    new_status = fields.get("status")
    if new_status is not None:
        new_status = VideoStatus(new_status)
        if not can_transition(current, new_status):
            raise InvalidStatusTransitionError(
                f"Transition {current.value} -> {new_status.value} is not allowed"
            )

    if new_status == VideoStatus.READY and not fields.get("hls_path"):
        raise InvalidStatusTransitionError("Status ready requires hls_path")
    if new_status == VideoStatus.FAILED and not fields.get("error"):
        raise InvalidStatusTransitionError("Status failed requires error")

    if fields.get("hls_path") is not None and new_status != VideoStatus.READY:
        raise InvalidStatusTransitionError("hls_path can only be set with status ready")
    if fields.get("error") is not None and new_status != VideoStatus.FAILED:
        raise InvalidStatusTransitionError("error can only be set with status failed")


class Video(Base):
    """Persistent video record, keyed by the upload session's video ID."""

    __tablename__ = "videos"

    video_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    original_file_name: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=VideoStatus.UPLOADED.value, nullable=False, index=True
    )
    hls_path: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    duration: Mapped[Optional[float]] = mapped_column(Float, nullable=True)  # seconds
    thumbnail: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<Video(video_id={self.video_id}, status={self.status})>"
