"""FFmpeg invocation for ladder encodes and media metadata.

Each codec run is an asyncio subprocess awaited by the caller; the result
carries the exit status and captured stderr instead of raising, so the
worker decides how a failed variant affects the job.
"""

import asyncio
import logging
import os
import shutil
from dataclasses import dataclass, field
from typing import Callable, Optional

import aiofiles.os

from vodpipe.core.config import Settings
from vodpipe.core.exceptions import TranscodeError
from vodpipe.modules.transcoding.ladder import VariantSpec

logger = logging.getLogger(__name__)

VARIANT_PLAYLIST = "index.m3u8"
SEGMENT_PATTERN = "segment_%03d.ts"


@dataclass
class EncodeProgress:
    """One progress block reported by ffmpeg's -progress output."""

    variant: str
    out_time_seconds: float = 0.0
    frame: int = 0
    speed: Optional[str] = None
    finished: bool = False
    raw: dict[str, str] = field(default_factory=dict)


@dataclass
class EncodeResult:
    """Outcome of one variant encode."""

    variant: str
    returncode: int
    stderr: str
    playlist_path: str

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def error_message(self) -> str:
        detail = self.stderr.strip() or f"exit code {self.returncode}"
        return f"FFmpeg failed on {self.variant}: {detail}"


ProgressCallback = Callable[[EncodeProgress], None]


def _reset_dir(path: str) -> None:
    """Remove path if present and recreate it empty."""
    if os.path.isdir(path):
        shutil.rmtree(path)
    os.makedirs(path, exist_ok=True)


def parse_progress_line(line: str) -> Optional[tuple[str, str]]:
    """Split a key=value line from -progress output; None for anything else."""
    key, sep, value = line.strip().partition("=")
    if not sep or not key:
        return None
    return key.strip(), value.strip()


def build_progress(variant: str, values: dict[str, str]) -> EncodeProgress:
    """Turn one completed progress block into an EncodeProgress."""
    # out_time_us and out_time_ms are both microseconds in ffmpeg's output
    raw_time = values.get("out_time_us") or values.get("out_time_ms") or "0"
    try:
        out_time = int(raw_time) / 1_000_000
    except ValueError:
        out_time = 0.0
    try:
        frame = int(values.get("frame", "0"))
    except ValueError:
        frame = 0
    return EncodeProgress(
        variant=variant,
        out_time_seconds=max(out_time, 0.0),
        frame=frame,
        speed=values.get("speed"),
        finished=values.get("progress") == "end",
        raw=dict(values),
    )


class FFmpegTranscoder:
    """FFmpeg-based HLS ladder encoder."""

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        ffprobe_path: str = "ffprobe",
        segment_seconds: int = 5,
        gop_size: int = 48,
        crf: int = 20,
        audio_sample_rate: int = 48000,
    ):
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path
        self.segment_seconds = segment_seconds
        self.gop_size = gop_size
        self.crf = crf
        self.audio_sample_rate = audio_sample_rate

    @classmethod
    def from_settings(cls, settings: Settings) -> "FFmpegTranscoder":
        return cls(
            ffmpeg_path=settings.FFMPEG_PATH,
            ffprobe_path=settings.FFPROBE_PATH,
            segment_seconds=settings.HLS_SEGMENT_SECONDS,
            gop_size=settings.GOP_SIZE,
            crf=settings.VIDEO_CRF,
            audio_sample_rate=settings.AUDIO_SAMPLE_RATE,
        )

    def build_variant_command(
        self,
        input_path: str,
        variant_dir: str,
        variant: VariantSpec,
    ) -> list[str]:
        """Build the FFmpeg command for one ladder variant.

        Keyframes land every gop_size frames with scene-cut detection off,
        so segment boundaries line up across variants.

        Args:
            input_path: Merged source file
            variant_dir: Output directory of this variant
            variant: Ladder entry to encode

        Returns:
            FFmpeg command as list of arguments
        """
        gop = str(self.gop_size)
        return [
            self.ffmpeg_path,
            "-y",
            "-hide_banner",
            "-loglevel", "error",
            "-progress", "pipe:1",
            "-nostats",
            "-i", input_path,
            # Video: width follows aspect ratio, rounded to even
            "-vf", f"scale=-2:{variant.height}",
            "-c:v", "libx264",
            "-profile:v", "main",
            "-crf", str(self.crf),
            "-g", gop,
            "-keyint_min", gop,
            "-sc_threshold", "0",
            "-b:v", f"{variant.video_bitrate_kbps}k",
            "-maxrate", f"{variant.maxrate_kbps}k",
            "-bufsize", f"{variant.bufsize_kbps}k",
            # Audio
            "-c:a", "aac",
            "-ar", str(self.audio_sample_rate),
            # HLS output
            "-hls_time", str(self.segment_seconds),
            "-hls_playlist_type", "vod",
            "-hls_segment_filename", os.path.join(variant_dir, SEGMENT_PATTERN),
            "-f", "hls",
            os.path.join(variant_dir, VARIANT_PLAYLIST),
        ]

    async def encode_variant(
        self,
        input_path: str,
        variant_dir: str,
        variant: VariantSpec,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> EncodeResult:
        """Encode one variant into variant_dir, replacing earlier output.

        Raises:
            TranscodeError: If the ffmpeg binary cannot be started
            asyncio.CancelledError: Propagated after the subprocess is killed
        """
        # A redelivered job starts this variant from a clean directory
        await asyncio.to_thread(_reset_dir, variant_dir)

        cmd = self.build_variant_command(input_path, variant_dir, variant)
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise TranscodeError(f"Failed to start ffmpeg: {e}", variant=variant.name) from e

        try:
            # stderr is drained alongside stdout so neither pipe fills up
            _, stderr = await asyncio.gather(
                self._read_progress(process.stdout, variant.name, progress_callback),
                process.stderr.read(),
            )
            returncode = await process.wait()
        except asyncio.CancelledError:
            process.kill()
            await process.wait()
            raise

        return EncodeResult(
            variant=variant.name,
            returncode=returncode,
            stderr=stderr.decode("utf-8", errors="ignore"),
            playlist_path=os.path.join(variant_dir, VARIANT_PLAYLIST),
        )

    async def _read_progress(
        self,
        stream: asyncio.StreamReader,
        variant: str,
        progress_callback: Optional[ProgressCallback],
    ) -> None:
        values: dict[str, str] = {}
        while True:
            line = await stream.readline()
            if not line:
                break
            parsed = parse_progress_line(line.decode("utf-8", errors="ignore"))
            if parsed is None:
                continue
            key, value = parsed
            values[key] = value
            # "progress" closes each block
            if key == "progress":
                if progress_callback is not None:
                    progress_callback(build_progress(variant, values))
                values = {}

    async def probe_duration(self, input_path: str) -> float:
        """Read the container duration in seconds with ffprobe.

        Raises:
            TranscodeError: If ffprobe fails or reports no duration
        """
        stdout, stderr, returncode = await self._run(
            self.ffprobe_path,
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            input_path,
        )
        if returncode != 0:
            raise TranscodeError(f"ffprobe failed: {stderr.strip()}")
        try:
            return float(stdout.strip())
        except ValueError:
            raise TranscodeError(f"ffprobe returned no duration: {stdout.strip()!r}")

    async def extract_thumbnail(
        self,
        input_path: str,
        output_path: str,
        at_seconds: float = 3.0,
    ) -> str:
        """Capture one JPEG frame at at_seconds.

        Raises:
            TranscodeError: If no frame was written
        """
        await aiofiles.os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)
        _, stderr, returncode = await self._run(
            self.ffmpeg_path,
            "-y",
            "-hide_banner",
            "-loglevel", "error",
            "-ss", str(at_seconds),
            "-i", input_path,
            "-frames:v", "1",
            "-q:v", "2",
            output_path,
        )
        # Seeking past the end exits 0 without writing a frame
        if returncode != 0 or not await aiofiles.os.path.isfile(output_path):
            raise TranscodeError(f"Thumbnail extraction failed: {stderr.strip() or 'no frame'}")
        return output_path

    async def _run(self, *cmd: str) -> tuple[str, str, int]:
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise TranscodeError(f"Failed to start {cmd[0]}: {e}") from e
        try:
            stdout, stderr = await process.communicate()
        except asyncio.CancelledError:
            process.kill()
            await process.wait()
            raise
        return (
            stdout.decode("utf-8", errors="ignore"),
            stderr.decode("utf-8", errors="ignore"),
            process.returncode,
        )
