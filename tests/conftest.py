"""Shared test doubles."""

import os
from typing import Optional

import pytest

from vodpipe.core.exceptions import TranscodeError
from vodpipe.modules.transcoding.ffmpeg import EncodeProgress, EncodeResult, VARIANT_PLAYLIST
from vodpipe.modules.transcoding.ladder import VariantSpec


class FakeTranscoder:
    """Stands in for FFmpegTranscoder without launching ffmpeg.

    Writes a variant playlist and one segment per encode, and can fail a
    chosen variant (non-zero exit) or raise on it.
    """

    def __init__(
        self,
        fail_on: Optional[str] = None,
        raise_on: Optional[str] = None,
        duration: Optional[float] = 12.0,
        thumbnail: bool = True,
    ):
        self.fail_on = fail_on
        self.raise_on = raise_on
        self.duration = duration
        self.thumbnail = thumbnail
        self.encoded: list[str] = []
        self.progress: list[EncodeProgress] = []

    async def encode_variant(self, input_path, variant_dir, variant: VariantSpec, progress_callback=None):
        if variant.name == self.raise_on:
            raise RuntimeError(f"disk full while encoding {variant.name}")

        os.makedirs(variant_dir, exist_ok=True)
        playlist = os.path.join(variant_dir, VARIANT_PLAYLIST)
        if variant.name == self.fail_on:
            return EncodeResult(
                variant=variant.name,
                returncode=1,
                stderr="Conversion failed!",
                playlist_path=playlist,
            )

        with open(os.path.join(variant_dir, "segment_000.ts"), "wb") as f:
            f.write(b"\x47" * 188)
        with open(playlist, "w") as f:
            f.write("#EXTM3U\n#EXT-X-PLAYLIST-TYPE:VOD\n#EXTINF:5.0,\nsegment_000.ts\n#EXT-X-ENDLIST\n")

        event = EncodeProgress(variant=variant.name, out_time_seconds=5.0, frame=120, finished=True)
        if progress_callback is not None:
            progress_callback(event)
        self.progress.append(event)
        self.encoded.append(variant.name)
        return EncodeResult(variant=variant.name, returncode=0, stderr="", playlist_path=playlist)

    async def probe_duration(self, input_path):
        if self.duration is None:
            raise TranscodeError("ffprobe failed: no duration")
        return self.duration

    async def extract_thumbnail(self, input_path, output_path, at_seconds=3.0):
        if not self.thumbnail:
            raise TranscodeError("Thumbnail extraction failed: no frame")
        os.makedirs(os.path.dirname(output_path), exist_ok=True)
        with open(output_path, "wb") as f:
            f.write(b"\xff\xd8\xff\xd9")
        return output_path


@pytest.fixture
def fake_transcoder_cls():
    return FakeTranscoder
