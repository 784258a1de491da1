"""Video module: lifecycle record, state machine and status store."""

from vodpipe.modules.video.models import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    VideoStatus,
    can_transition,
    check_update,
)
from vodpipe.modules.video.schemas import VideoRecord
from vodpipe.modules.video.store import (
    DatabaseStatusStore,
    InMemoryStatusStore,
    StatusStore,
    create_status_store,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "TERMINAL_STATUSES",
    "VideoStatus",
    "can_transition",
    "check_update",
    "VideoRecord",
    "StatusStore",
    "DatabaseStatusStore",
    "InMemoryStatusStore",
    "create_status_store",
]
