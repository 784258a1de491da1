"""Stream module: path-safe HLS manifest and segment delivery."""

from vodpipe.modules.stream.resolver import StreamFile, StreamResolver, is_within

__all__ = [
    "StreamFile",
    "StreamResolver",
    "is_within",
]
