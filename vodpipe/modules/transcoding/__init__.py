"""Transcoding module for HLS ladder encoding.

Implements the FFmpeg-based bitrate ladder, master manifest synthesis and
the worker that drives both for each queued job.
"""

from vodpipe.modules.transcoding.ffmpeg import EncodeProgress, EncodeResult, FFmpegTranscoder
from vodpipe.modules.transcoding.ladder import DEFAULT_LADDER, VariantSpec, validate_ladder
from vodpipe.modules.transcoding.manifest import build_master_manifest, write_master_manifest
from vodpipe.modules.transcoding.worker import TranscodeWorker, register_transcode_handler

__all__ = [
    "DEFAULT_LADDER",
    "VariantSpec",
    "validate_ladder",
    "EncodeProgress",
    "EncodeResult",
    "FFmpegTranscoder",
    "build_master_manifest",
    "write_master_manifest",
    "TranscodeWorker",
    "register_transcode_handler",
]
