"""Tests for both StatusStore backends."""

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from vodpipe.core.config import Settings
from vodpipe.core.database import Base
from vodpipe.core.exceptions import InvalidStatusTransitionError, NotFoundError
from vodpipe.modules.video.models import VideoStatus
from vodpipe.modules.video.schemas import VideoRecord
from vodpipe.modules.video.store import (
    DatabaseStatusStore,
    InMemoryStatusStore,
    create_status_store,
)


async def make_database_store(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'videos.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return DatabaseStatusStore(async_sessionmaker(engine, expire_on_commit=False)), engine


async def exercise_lifecycle(store) -> None:
    created = await store.create(VideoRecord(video_id="v1", original_file_name="a.mp4"))
    assert created.status == VideoStatus.UPLOADED
    assert created.created_at is not None

    assert await store.find_by_video_id("missing") is None
    with pytest.raises(NotFoundError):
        await store.get("missing")
    with pytest.raises(NotFoundError):
        await store.update_by_video_id("missing", status=VideoStatus.MERGING)

    await store.update_by_video_id("v1", status=VideoStatus.MERGING)
    await store.update_by_video_id("v1", status="transcoding")
    with pytest.raises(InvalidStatusTransitionError):
        await store.update_by_video_id("v1", status=VideoStatus.MERGING)

    ready = await store.update_by_video_id(
        "v1",
        status=VideoStatus.READY,
        hls_path="uploads/hls/v1/master.m3u8",
        error=None,
        duration=12.0,
        thumbnail="thumbnails/v1.jpg",
    )
    assert ready.status == VideoStatus.READY
    assert ready.hls_path == "uploads/hls/v1/master.m3u8"
    assert ready.duration == 12.0

    found = await store.find_by_video_id("v1")
    assert found.status == VideoStatus.READY
    assert found.original_file_name == "a.mp4"
    assert found.thumbnail == "thumbnails/v1.jpg"

    with pytest.raises(InvalidStatusTransitionError):
        await store.update_by_video_id("v1", status=VideoStatus.FAILED, error="late")


class TestInMemoryStatusStore:

    @pytest.mark.asyncio
    async def test_lifecycle(self) -> None:
        await exercise_lifecycle(InMemoryStatusStore())


class TestDatabaseStatusStore:

    @pytest.mark.asyncio
    async def test_lifecycle(self, tmp_path) -> None:
        store, engine = await make_database_store(tmp_path)
        try:
            await exercise_lifecycle(store)
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_failed_update_keeps_record_unchanged(self, tmp_path) -> None:
        store, engine = await make_database_store(tmp_path)
        try:
            await store.create(VideoRecord(video_id="v2"))
            with pytest.raises(InvalidStatusTransitionError):
                await store.update_by_video_id("v2", status=VideoStatus.READY)

            record = await store.get("v2")
            assert record.status == VideoStatus.UPLOADED
            assert record.hls_path is None
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_record_serializes_camel_case(self, tmp_path) -> None:
        store, engine = await make_database_store(tmp_path)
        try:
            record = await store.create(VideoRecord(video_id="v3", original_file_name="b.mp4"))
            payload = record.model_dump(by_alias=True, mode="json")

            assert payload["videoId"] == "v3"
            assert payload["originalFileName"] == "b.mp4"
            assert payload["status"] == "uploaded"
            assert payload["hlsPath"] is None
        finally:
            await engine.dispose()


def test_factory_selects_backend() -> None:
    assert isinstance(create_status_store(Settings(STATUS_STORE_BACKEND="memory")), InMemoryStatusStore)
    with pytest.raises(ValueError):
        create_status_store(Settings(STATUS_STORE_BACKEND="mongo"))
