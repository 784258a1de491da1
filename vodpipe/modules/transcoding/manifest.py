"""Master manifest synthesis."""

import os
from typing import Sequence

import aiofiles
import aiofiles.os

from vodpipe.modules.transcoding.ffmpeg import VARIANT_PLAYLIST
from vodpipe.modules.transcoding.ladder import VariantSpec

MASTER_MANIFEST = "master.m3u8"


def build_master_manifest(ladder: Sequence[VariantSpec]) -> str:
    """Render the master playlist, one stream entry per variant in ladder order."""
    lines = ["#EXTM3U"]
    for variant in ladder:
        lines.append(
            f"#EXT-X-STREAM-INF:PROGRAM-ID=1,BANDWIDTH={variant.bandwidth},"
            f"RESOLUTION={variant.resolution}"
        )
        lines.append(f"{variant.name}/{VARIANT_PLAYLIST}")
    return "\n".join(lines) + "\n"


async def write_master_manifest(output_dir: str, ladder: Sequence[VariantSpec]) -> str:
    """Write master.m3u8 into output_dir and return its path.

    The file is renamed into place so a reader never sees a partial manifest.
    """
    path = os.path.join(output_dir, MASTER_MANIFEST)
    temp_path = f"{path}.tmp"

    async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
        await f.write(build_master_manifest(ladder))
    await aiofiles.os.replace(temp_path, path)
    return path
