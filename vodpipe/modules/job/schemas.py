"""Pydantic schemas for transcode jobs."""

from pydantic import BaseModel, Field


class TranscodeJob(BaseModel):
    """One unit of work: the full ladder transcode of one merged video."""

    video_id: str = Field(..., min_length=1)
    input_file: str = Field(..., min_length=1)


def job_id_for(video_id: str) -> str:
    """Deterministic job ID, so a consumer can detect duplicate deliveries per video."""
    return f"transcode-{video_id}"
