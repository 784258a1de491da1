"""Video status API router."""

from fastapi import APIRouter, Depends, HTTPException, status

from vodpipe.core.dependencies import get_status_store
from vodpipe.core.exceptions import NotFoundError
from vodpipe.modules.video.schemas import VideoRecord
from vodpipe.modules.video.store import StatusStore

router = APIRouter(prefix="/api/videos", tags=["videos"])


@router.get("/{video_id}", response_model=VideoRecord, response_model_by_alias=True)
async def get_video(
    video_id: str,
    store: StatusStore = Depends(get_status_store),
):
    """Get a video's lifecycle record; clients poll this until ready or failed."""
    try:
        return await store.get(video_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
