"""Pipeline error taxonomy.

Every error carries the HTTP status a router should answer with when the
failure happens synchronously with a request.
"""

from typing import Optional

# Error text stored on a video record is capped at this length.
MAX_ERROR_LENGTH = 4000


def truncate_error(message: str) -> str:
    """Cap an error message to what a video record stores."""
    return message[:MAX_ERROR_LENGTH]


class PipelineError(Exception):
    """Base class for all pipeline errors."""

    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class UploadError(PipelineError):
    """Missing or invalid chunk payload."""

    status_code = 400


class MissingChunkError(UploadError):
    """Merge could not find an expected chunk file."""

    def __init__(self, video_id: str, sequence_number: int):
        super().__init__(
            f"Missing chunk {sequence_number} for video {video_id}"
        )
        self.video_id = video_id
        self.sequence_number = sequence_number


class TranscodeError(PipelineError):
    """Codec subprocess failed on a variant."""

    status_code = 500

    def __init__(self, message: str, variant: Optional[str] = None):
        super().__init__(message)
        self.variant = variant


class NotFoundError(PipelineError):
    """Unknown video or unresolved stream file."""

    status_code = 404


class PathTraversalError(PipelineError):
    """Resolved stream path escapes the per-video root."""

    status_code = 400


class InvalidStatusTransitionError(PipelineError):
    """Attempted lifecycle transition is not in the transition table."""

    status_code = 409
