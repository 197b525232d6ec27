from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Sequence

from PIL import Image

from .planner import TileRequestDescriptor
from .sinks import DirectoryTileSink

logger = logging.getLogger(__name__)

DEFAULT_TILE_SIZE = 256


@dataclass
class Mosaic:
    image: Image.Image
    missing: List[str] = field(default_factory=list)


def stitch_tiles(
    directory: Path,
    descriptors: Sequence[TileRequestDescriptor],
    *,
    tile_size: int = DEFAULT_TILE_SIZE,
    extension: str = "jpeg",
) -> Mosaic:
    """Paste downloaded tiles into one image laid out by tile row and column.

    Tiles that are absent or cannot be decoded leave a black gap and are
    listed in :attr:`Mosaic.missing`.
    """

    if not descriptors:
        raise ValueError("No tiles to stitch")

    sink = DirectoryTileSink(directory, extension=extension)
    indices = [descriptor.indices for descriptor in descriptors]
    min_row = min(row for row, _, _ in indices)
    max_row = max(row for row, _, _ in indices)
    min_col = min(col for _, col, _ in indices)
    max_col = max(col for _, col, _ in indices)

    rows = max_row - min_row + 1
    columns = max_col - min_col + 1
    mosaic = Image.new("RGB", (columns * tile_size, rows * tile_size))
    missing: List[str] = []

    for descriptor, (row, col, _) in zip(descriptors, indices):
        path = sink.path_for(descriptor.key)
        if not path.exists():
            missing.append(descriptor.key)
            continue
        try:
            with Image.open(path) as tile:
                tile.load()
                tile_image = tile.convert("RGB")
        except Exception as exc:
            logger.warning("Unable to decode tile %s: %s", path, exc)
            missing.append(descriptor.key)
            continue
        if tile_image.size != (tile_size, tile_size):
            tile_image = tile_image.resize((tile_size, tile_size))
        mosaic.paste(tile_image, ((col - min_col) * tile_size, (row - min_row) * tile_size))

    if missing:
        logger.info("Mosaic is missing %d of %d tiles", len(missing), len(descriptors))
    return Mosaic(image=mosaic, missing=missing)
