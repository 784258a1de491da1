"""Tests for the ffmpeg subprocess runner.

A small shell script stands in for the ffmpeg binary so exit codes,
stderr capture and -progress parsing run through a real subprocess.
"""

import os
import stat
import sys

import pytest

from vodpipe.core.exceptions import TranscodeError
from vodpipe.modules.transcoding.ffmpeg import (
    FFmpegTranscoder,
    build_progress,
    parse_progress_line,
)
from vodpipe.modules.transcoding.ladder import DEFAULT_LADDER

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="needs a POSIX shell")


def write_script(path, body: str) -> str:
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(path.stat().st_mode | stat.S_IEXEC)
    return str(path)


PROGRESS_OK = """
printf 'frame=24\\nout_time_us=1000000\\nspeed=2.0x\\nprogress=continue\\n'
printf 'frame=48\\nout_time_us=2000000\\nspeed=2.1x\\nprogress=end\\n'
exit 0
"""

FAILING = """
echo 'Error opening input file' 1>&2
exit 1
"""


class TestProgressParsing:

    def test_parse_progress_line(self) -> None:
        assert parse_progress_line("out_time_us=1500000\n") == ("out_time_us", "1500000")
        assert parse_progress_line("garbage") is None
        assert parse_progress_line("=value") is None

    def test_build_progress(self) -> None:
        progress = build_progress(
            "720p", {"frame": "96", "out_time_us": "4000000", "speed": "1.5x", "progress": "end"}
        )
        assert progress.variant == "720p"
        assert progress.frame == 96
        assert progress.out_time_seconds == 4.0
        assert progress.speed == "1.5x"
        assert progress.finished is True

    def test_build_progress_tolerates_na(self) -> None:
        progress = build_progress("360p", {"out_time_us": "N/A", "frame": "", "progress": "continue"})
        assert progress.out_time_seconds == 0.0
        assert progress.frame == 0
        assert progress.finished is False


class TestEncodeVariant:

    @pytest.mark.asyncio
    async def test_success_reports_progress(self, tmp_path) -> None:
        transcoder = FFmpegTranscoder(ffmpeg_path=write_script(tmp_path / "ffmpeg", PROGRESS_OK))
        events = []
        variant_dir = tmp_path / "hls" / "vid" / "360p"

        result = await transcoder.encode_variant(
            "in.mp4", str(variant_dir), DEFAULT_LADDER[0], progress_callback=events.append
        )

        assert result.success
        assert result.variant == "360p"
        assert result.playlist_path == os.path.join(str(variant_dir), "index.m3u8")
        assert variant_dir.is_dir()
        assert [e.frame for e in events] == [24, 48]
        assert [e.finished for e in events] == [False, True]
        assert events[-1].out_time_seconds == 2.0

    @pytest.mark.asyncio
    async def test_failure_captures_stderr(self, tmp_path) -> None:
        transcoder = FFmpegTranscoder(ffmpeg_path=write_script(tmp_path / "ffmpeg", FAILING))

        result = await transcoder.encode_variant("in.mp4", str(tmp_path / "out"), DEFAULT_LADDER[1])

        assert not result.success
        assert result.returncode == 1
        assert "Error opening input file" in result.stderr
        assert result.error_message.startswith("FFmpeg failed on 480p")

    @pytest.mark.asyncio
    async def test_rerun_clears_previous_output(self, tmp_path) -> None:
        transcoder = FFmpegTranscoder(ffmpeg_path=write_script(tmp_path / "ffmpeg", PROGRESS_OK))
        variant_dir = tmp_path / "out"
        variant_dir.mkdir()
        (variant_dir / "segment_099.ts").write_bytes(b"old")

        await transcoder.encode_variant("in.mp4", str(variant_dir), DEFAULT_LADDER[0])

        assert not (variant_dir / "segment_099.ts").exists()

    @pytest.mark.asyncio
    async def test_missing_binary_raises(self, tmp_path) -> None:
        transcoder = FFmpegTranscoder(ffmpeg_path=str(tmp_path / "no-such-ffmpeg"))

        with pytest.raises(TranscodeError) as exc_info:
            await transcoder.encode_variant("in.mp4", str(tmp_path / "out"), DEFAULT_LADDER[0])

        assert exc_info.value.variant == "360p"


class TestMetadata:

    @pytest.mark.asyncio
    async def test_probe_duration(self, tmp_path) -> None:
        ffprobe = write_script(tmp_path / "ffprobe", "echo 12.480000\n")
        transcoder = FFmpegTranscoder(ffprobe_path=ffprobe)

        assert await transcoder.probe_duration("in.mp4") == pytest.approx(12.48)

    @pytest.mark.asyncio
    async def test_probe_duration_failure(self, tmp_path) -> None:
        ffprobe = write_script(tmp_path / "ffprobe", "echo 'Invalid data' 1>&2\nexit 1\n")
        transcoder = FFmpegTranscoder(ffprobe_path=ffprobe)

        with pytest.raises(TranscodeError):
            await transcoder.probe_duration("in.mp4")

    @pytest.mark.asyncio
    async def test_thumbnail_without_frame_fails(self, tmp_path) -> None:
        # Exits 0 but writes nothing, as ffmpeg does when seeking past the end
        transcoder = FFmpegTranscoder(ffmpeg_path=write_script(tmp_path / "ffmpeg", "exit 0\n"))

        with pytest.raises(TranscodeError):
            await transcoder.extract_thumbnail("in.mp4", str(tmp_path / "thumbs" / "v.jpg"))

    @pytest.mark.asyncio
    async def test_thumbnail_written(self, tmp_path) -> None:
        # The output path is the last argument
        script = 'for last; do :; done\nprintf "jpeg" > "$last"\n'
        transcoder = FFmpegTranscoder(ffmpeg_path=write_script(tmp_path / "ffmpeg", script))
        output = tmp_path / "thumbs" / "v.jpg"

        assert await transcoder.extract_thumbnail("in.mp4", str(output), at_seconds=3) == str(output)
        assert output.read_bytes() == b"jpeg"
