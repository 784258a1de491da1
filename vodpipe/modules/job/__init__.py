"""Job queue module for transcode job delivery."""

from vodpipe.modules.job.queue import (
    CeleryWorkQueue,
    JobHandler,
    LocalWorkQueue,
    WorkQueue,
    create_work_queue,
)
from vodpipe.modules.job.schemas import TranscodeJob, job_id_for

__all__ = [
    "WorkQueue",
    "LocalWorkQueue",
    "CeleryWorkQueue",
    "JobHandler",
    "create_work_queue",
    "TranscodeJob",
    "job_id_for",
]
