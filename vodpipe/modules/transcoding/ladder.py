"""Bitrate ladder: the fixed output profiles the encoder targets."""

import math
from dataclasses import dataclass
from typing import Sequence

# maxrate and bufsize are derived from the target video bitrate
MAXRATE_FACTOR = 1.07
BUFSIZE_FACTOR = 1.5


@dataclass(frozen=True)
class VariantSpec:
    """A single variant in the ladder."""

    name: str
    width: int
    height: int
    video_bitrate: int  # bps
    bandwidth: int  # bps, advertised in the master manifest

    @property
    def resolution(self) -> str:
        """RESOLUTION attribute value, e.g. 1280x720."""
        return f"{self.width}x{self.height}"

    @property
    def video_bitrate_kbps(self) -> int:
        return math.floor(self.video_bitrate / 1000)

    @property
    def maxrate_kbps(self) -> int:
        return math.floor(self.video_bitrate * MAXRATE_FACTOR / 1000)

    @property
    def bufsize_kbps(self) -> int:
        return math.floor(self.video_bitrate * BUFSIZE_FACTOR / 1000)


DEFAULT_LADDER: tuple[VariantSpec, ...] = (
    VariantSpec("360p", 640, 360, 800_000, 800_000),
    VariantSpec("480p", 854, 480, 1_200_000, 1_200_000),
    VariantSpec("720p", 1280, 720, 2_500_000, 2_500_000),
    VariantSpec("1080p", 1920, 1080, 5_000_000, 5_000_000),
)


def validate_ladder(ladder: Sequence[VariantSpec]) -> tuple[bool, list[str]]:
    """Validate a ladder.

    Args:
        ladder: Variants in output order

    Returns:
        Tuple of (is_valid, error_messages)
    """
    errors = []

    if not ladder:
        errors.append("Ladder must have at least one variant")

    names = [variant.name for variant in ladder]
    if len(set(names)) != len(names):
        errors.append("Variant names must be unique")

    prev_bitrate = 0
    for variant in ladder:
        if not variant.name or "/" in variant.name or variant.name in (".", ".."):
            errors.append(f"Invalid variant name: {variant.name!r}")
        if variant.width <= 0 or variant.height <= 0:
            errors.append(f"Dimensions must be positive for {variant.name}")
        if variant.video_bitrate <= prev_bitrate:
            errors.append("Variants must be ordered by increasing bitrate")
        prev_bitrate = variant.video_bitrate

    return len(errors) == 0, errors


def get_variant(name: str, ladder: Sequence[VariantSpec] = DEFAULT_LADDER) -> VariantSpec:
    for variant in ladder:
        if variant.name == name:
            return variant
    raise KeyError(name)
