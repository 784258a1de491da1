"""Status store: the document store holding one VideoRecord per video ID.

Two backends share the StatusStore interface:
- DatabaseStatusStore: async SQLAlchemy, one session per call
- InMemoryStatusStore: dict guarded by an asyncio.Lock, for the local queue and tests

Updates are read-modify-write by key with no concurrency token; the
lifecycle is single-writer per video ID, so last write wins.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vodpipe.core.config import Settings
from vodpipe.core.exceptions import NotFoundError
from vodpipe.modules.video.models import Video, VideoStatus, check_update
from vodpipe.modules.video.schemas import VideoRecord

logger = logging.getLogger(__name__)


class StatusStore(ABC):
    """Interface of the video record store."""

    @abstractmethod
    async def create(self, record: VideoRecord) -> VideoRecord:
        """Insert a new record."""

    @abstractmethod
    async def find_by_video_id(self, video_id: str) -> Optional[VideoRecord]:
        """Return the record, or None when the video ID is unknown."""

    @abstractmethod
    async def update_by_video_id(self, video_id: str, **fields: Any) -> VideoRecord:
        """Apply a lifecycle-checked update and return the new record.

        Raises:
            NotFoundError: If the video ID is unknown
            InvalidStatusTransitionError: If the update breaks the lifecycle rules
        """

    async def get(self, video_id: str) -> VideoRecord:
        """Like find_by_video_id but raises NotFoundError."""
        record = await self.find_by_video_id(video_id)
        if record is None:
            raise NotFoundError(f"Video {video_id} not found")
        return record


def _normalize(fields: dict[str, Any]) -> dict[str, Any]:
    if isinstance(fields.get("status"), VideoStatus):
        fields = {**fields, "status": fields["status"].value}
    return fields


class DatabaseStatusStore(StatusStore):
    """Status store backed by the videos table."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def create(self, record: VideoRecord) -> VideoRecord:
        async with self.session_maker() as session:
            video = Video(
                video_id=record.video_id,
                original_file_name=record.original_file_name,
                status=record.status.value,
            )
            session.add(video)
            await session.commit()
            await session.refresh(video)
            return VideoRecord.model_validate(video)

    async def find_by_video_id(self, video_id: str) -> Optional[VideoRecord]:
        async with self.session_maker() as session:
            video = await self._get(session, video_id)
            return VideoRecord.model_validate(video) if video else None

    async def update_by_video_id(self, video_id: str, **fields: Any) -> VideoRecord:
        async with self.session_maker() as session:
            video = await self._get(session, video_id)
            if video is None:
                raise NotFoundError(f"Video {video_id} not found")

            check_update(VideoStatus(video.status), fields)
            for key, value in _normalize(fields).items():
                setattr(video, key, value)

            await session.commit()
            await session.refresh(video)
            return VideoRecord.model_validate(video)

    async def _get(self, session: AsyncSession, video_id: str) -> Optional[Video]:
        result = await session.execute(select(Video).where(Video.video_id == video_id))
        return result.scalar_one_or_none()


class InMemoryStatusStore(StatusStore):
    """Process-local status store."""

    def __init__(self):
        self._records: dict[str, VideoRecord] = {}
        self._lock = asyncio.Lock()

    async def create(self, record: VideoRecord) -> VideoRecord:
        now = datetime.now(timezone.utc)
        async with self._lock:
            stored = record.model_copy(update={"created_at": now, "updated_at": now})
            self._records[record.video_id] = stored
            return stored

    async def find_by_video_id(self, video_id: str) -> Optional[VideoRecord]:
        return self._records.get(video_id)

    async def update_by_video_id(self, video_id: str, **fields: Any) -> VideoRecord:
        async with self._lock:
            current = self._records.get(video_id)
            if current is None:
                raise NotFoundError(f"Video {video_id} not found")

            check_update(current.status, fields)
            update = dict(fields)
            if "status" in update:
                update["status"] = VideoStatus(update["status"])
            update["updated_at"] = datetime.now(timezone.utc)

            updated = current.model_copy(update=update)
            self._records[video_id] = updated
            return updated


def create_status_store(settings: Settings) -> StatusStore:
    """Build the status store selected by STATUS_STORE_BACKEND."""
    backend = settings.STATUS_STORE_BACKEND.lower()
    if backend == "memory":
        return InMemoryStatusStore()
    if backend == "database":
        from vodpipe.core.database import get_session_maker

        return DatabaseStatusStore(get_session_maker())
    raise ValueError(f"Unknown STATUS_STORE_BACKEND: {settings.STATUS_STORE_BACKEND}")
