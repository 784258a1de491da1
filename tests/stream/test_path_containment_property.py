"""Property-based tests for stream path resolution.

No request may resolve outside its video's root: not through "..",
absolute paths, symlinks, or a sibling directory sharing the video ID as
a string prefix.
"""

import os
import tempfile
from pathlib import Path

import pytest
from hypothesis import given, settings, strategies as st

from vodpipe.core.exceptions import NotFoundError, PathTraversalError
from vodpipe.modules.stream.resolver import StreamResolver, is_within

VIDEO_ID = "0b7e2a4c-6f0e-4a55-9d5e-2f1b8f3c9a10"

segment_name = st.from_regex(r"[a-z0-9_]{1,12}\.(ts|m3u8)", fullmatch=True)


def build_tree(root: Path) -> StreamResolver:
    video_root = root / "hls" / VIDEO_ID
    (video_root / "720p").mkdir(parents=True)
    (video_root / "master.m3u8").write_text("#EXTM3U\n")
    (video_root / "720p" / "index.m3u8").write_text("#EXTM3U\n")
    (video_root / "720p" / "segment_000.ts").write_bytes(b"\x47" * 376)
    (video_root / "720p" / "poster.jpg").write_bytes(b"\xff\xd8")

    # Sibling that shares the video ID as a prefix, and a file above the HLS root
    evil = root / "hls" / f"{VIDEO_ID}-evil"
    evil.mkdir()
    (evil / "secret.ts").write_bytes(b"secret")
    (root / "outside.ts").write_bytes(b"outside")
    return StreamResolver(root / "hls")


class TestIsWithin:

    def test_separator_aware(self) -> None:
        root = Path("/srv/hls/abc")
        assert is_within(Path("/srv/hls/abc"), root)
        assert is_within(Path("/srv/hls/abc/720p/index.m3u8"), root)
        assert not is_within(Path("/srv/hls/abc-evil/secret.ts"), root)
        assert not is_within(Path("/srv/hls/ab"), root)

    @given(prefix=st.text(alphabet="abcdef0123456789-", min_size=1, max_size=10),
           suffix=st.text(alphabet="abcdef0123456789-_", min_size=1, max_size=10))
    @settings(max_examples=100)
    def test_string_prefix_is_not_containment(self, prefix: str, suffix: str) -> None:
        root = Path("/srv/hls") / prefix
        assert not is_within(Path("/srv/hls") / f"{prefix}{suffix}" / "x.ts", root)


class TestStreamResolver:

    @given(depth=st.integers(min_value=1, max_value=5), name=segment_name)
    @settings(max_examples=100, deadline=None)
    def test_parent_segments_rejected(self, depth: int, name: str) -> None:
        """For any number of ".." segments climbing out of the video root, the
        request SHALL be rejected, never served."""
        with tempfile.TemporaryDirectory() as tmp:
            resolver = build_tree(Path(tmp))
            escape = "/".join([".."] * (depth + 1))
            with pytest.raises(PathTraversalError):
                resolver.resolve(VIDEO_ID, escape, name)

    def test_sibling_prefix_rejected(self, tmp_path) -> None:
        resolver = build_tree(tmp_path)

        with pytest.raises(PathTraversalError):
            resolver.resolve(VIDEO_ID, f"../{VIDEO_ID}-evil", "secret.ts")

    def test_absolute_path_rejected(self, tmp_path) -> None:
        resolver = build_tree(tmp_path)

        with pytest.raises(PathTraversalError):
            resolver.resolve(VIDEO_ID, "720p", str(tmp_path / "outside.ts"))

    def test_video_id_traversal_rejected(self, tmp_path) -> None:
        resolver = build_tree(tmp_path)

        for video_id in ("..", ".", "", f"{VIDEO_ID}/../.."):
            with pytest.raises(PathTraversalError):
                resolver.resolve(video_id)

    @pytest.mark.skipif(not hasattr(os, "symlink"), reason="needs symlinks")
    def test_symlink_escape_rejected(self, tmp_path) -> None:
        resolver = build_tree(tmp_path)
        os.symlink(tmp_path / "outside.ts", tmp_path / "hls" / VIDEO_ID / "720p" / "link.ts")

        with pytest.raises(PathTraversalError):
            resolver.resolve(VIDEO_ID, "720p", "link.ts")

    def test_dot_segment_inside_root_allowed(self, tmp_path) -> None:
        resolver = build_tree(tmp_path)

        target = resolver.resolve(VIDEO_ID, "720p", "../master.m3u8")
        assert target.path == (tmp_path / "hls" / VIDEO_ID / "master.m3u8").resolve()

    def test_missing_files(self, tmp_path) -> None:
        resolver = build_tree(tmp_path)

        with pytest.raises(NotFoundError):
            resolver.resolve("11111111-2222-3333-4444-555555555555")
        with pytest.raises(NotFoundError):
            resolver.resolve(VIDEO_ID, "1080p", "index.m3u8")
        with pytest.raises(NotFoundError):
            # Directory, not a file
            resolver.resolve(VIDEO_ID, "720p", ".")

    def test_headers_by_extension(self, tmp_path) -> None:
        resolver = build_tree(tmp_path)

        master = resolver.resolve(VIDEO_ID)
        assert master.kind == "manifest"
        assert master.media_type == "application/vnd.apple.mpegurl"
        assert master.cache_control == "public, max-age=5"

        segment = resolver.resolve(VIDEO_ID, "720p", "segment_000.ts")
        assert segment.kind == "segment"
        assert segment.media_type == "video/mp2t"
        assert segment.cache_control == "public, max-age=31536000, immutable"
        assert segment.size == 376

        other = resolver.resolve(VIDEO_ID, "720p", "poster.jpg")
        assert other.media_type == "application/octet-stream"
        assert other.cache_control is None
