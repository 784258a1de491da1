"""Resolution of stream requests to files under a video's HLS root.

Containment is checked on canonical paths with a separator-aware prefix,
so neither ".." segments, absolute paths, symlinks nor a sibling directory
sharing the video ID as a string prefix can escape the video root.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from stat import S_ISREG
from typing import Optional, Union

from vodpipe.core.exceptions import NotFoundError, PathTraversalError
from vodpipe.modules.transcoding.manifest import MASTER_MANIFEST

MANIFEST_MEDIA_TYPE = "application/vnd.apple.mpegurl"
SEGMENT_MEDIA_TYPES = {
    ".ts": "video/mp2t",
    ".m4s": "video/iso.segment",
}
DEFAULT_MEDIA_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class StreamFile:
    """A resolved, existing file plus the headers it is served with."""

    path: Path
    kind: str  # manifest | segment | other
    media_type: str
    cache_control: Optional[str]
    size: int


def is_within(path: Path, root: Path) -> bool:
    """True if path equals root or lies below it. Both must be canonical."""
    path_str, root_str = str(path), str(root)
    return path_str == root_str or path_str.startswith(root_str.rstrip(os.sep) + os.sep)


class StreamResolver:
    """Maps (video_id, variant, file) to a servable file."""

    def __init__(
        self,
        hls_root: Union[str, Path],
        manifest_max_age: int = 5,
        segment_max_age: int = 31536000,
    ):
        self.hls_root = Path(hls_root).resolve()
        self.manifest_max_age = manifest_max_age
        self.segment_max_age = segment_max_age

    def video_root(self, video_id: str) -> Path:
        """Canonical per-video root; must be a direct child of the HLS root.

        Raises:
            PathTraversalError: If video_id escapes or names the HLS root itself
            NotFoundError: If the OS refuses video_id as a file name
        """
        root = self._canonical(self.hls_root / video_id, video_id)
        if root.parent != self.hls_root:
            raise PathTraversalError(f"Invalid video path: {video_id!r}")
        return root

    def resolve(
        self,
        video_id: str,
        variant: Optional[str] = None,
        file_name: Optional[str] = None,
    ) -> StreamFile:
        """Resolve the master manifest (no variant/file) or variant/file.

        Raises:
            PathTraversalError: If the resolved path leaves the video root
            NotFoundError: If the resolved file does not exist
        """
        video_root = self.video_root(video_id)

        if variant is None and file_name is None:
            candidate = video_root / MASTER_MANIFEST
        elif variant is not None and file_name is not None:
            candidate = video_root / variant / file_name
        else:
            raise NotFoundError("Stream path needs both variant and file")

        request_path = f"{video_id}/{variant or ''}/{file_name or ''}"
        resolved = self._canonical(candidate, request_path)
        if not is_within(resolved, video_root):
            raise PathTraversalError(f"Path escapes video root: {request_path!r}")

        try:
            stat = resolved.stat()
        except OSError:
            # Missing, unreadable or a name the filesystem cannot hold
            raise NotFoundError("File not found")
        if not S_ISREG(stat.st_mode):
            raise NotFoundError("File not found")

        kind, media_type, cache_control = self.headers_for(resolved)
        return StreamFile(
            path=resolved,
            kind=kind,
            media_type=media_type,
            cache_control=cache_control,
            size=stat.st_size,
        )

    @staticmethod
    def _canonical(path: Path, request_path: str) -> Path:
        """Canonicalize path, mapping OS-level rejections to pipeline errors.

        Raises:
            PathTraversalError: If the path holds a NUL byte
            NotFoundError: If the OS refuses the name (e.g. too long)
        """
        try:
            return path.resolve()
        except ValueError:
            raise PathTraversalError(f"Invalid characters in path: {request_path!r}")
        except OSError:
            raise NotFoundError("File not found")

    def headers_for(self, path: Path) -> tuple[str, str, Optional[str]]:
        """Kind, media type and Cache-Control for a file, chosen by extension.

        Manifests get a short max-age since a variant playlist may still be
        written while others are served; segments are write-once.
        """
        suffix = path.suffix.lower()
        if suffix == ".m3u8":
            return "manifest", MANIFEST_MEDIA_TYPE, f"public, max-age={self.manifest_max_age}"
        if suffix in SEGMENT_MEDIA_TYPES:
            return (
                "segment",
                SEGMENT_MEDIA_TYPES[suffix],
                f"public, max-age={self.segment_max_age}, immutable",
            )
        return "other", DEFAULT_MEDIA_TYPE, None
