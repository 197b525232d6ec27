from __future__ import annotations

import logging
from pathlib import Path
from typing import Tuple

from .auth import Authenticator, StaticTokenAuthenticator
from .bbox import validate_bbox
from .fetcher import DEFAULT_MAX_RETRY_ROUNDS, BulkFetchEngine, FetchReport, ProgressCallback
from .planner import TileRequestDescriptor, WmtsUrlBuilder, plan_tiles
from .products import ProductLine, get_product_config
from .queries import DEFAULT_IMAGE_FORMAT
from .sinks import DirectoryTileSink
from .tiles import Reprojector
from .usage import record_fetch_run

logger = logging.getLogger(__name__)

MAX_TILES_PER_RUN = 50000


def plan_bbox_tiles(
    *,
    product: ProductLine | str,
    bbox: str,
    zoom: int,
    projection: str | None = None,
    layer: str | None = None,
    image_format: str | None = None,
    reprojector: Reprojector | None = None,
) -> list[TileRequestDescriptor]:
    """Validate ``bbox`` and list the GetTile requests covering it at ``zoom``.

    Areas needing more than ``MAX_TILES_PER_RUN`` tiles raise :class:`ValidationError`.
    """

    config = get_product_config(product)
    extent = validate_bbox(bbox, projection)
    url_for = WmtsUrlBuilder(config, projection=projection, layer=layer, image_format=image_format)
    return plan_tiles(extent, zoom, url_for, reprojector, max_tiles=MAX_TILES_PER_RUN)


async def download_bbox_tiles(
    *,
    product: ProductLine | str,
    bbox: str,
    zoom: int,
    output_dir: Path,
    projection: str | None = None,
    layer: str | None = None,
    image_format: str | None = None,
    authenticator: Authenticator | None = None,
    concurrency: int | None = None,
    max_retry_rounds: int = DEFAULT_MAX_RETRY_ROUNDS,
    progress: ProgressCallback | None = None,
    reprojector: Reprojector | None = None,
) -> Tuple[list[TileRequestDescriptor], FetchReport]:
    """Download every WMTS tile covering ``bbox`` into ``output_dir``.

    Returns the planned descriptors together with the fetch report. Tiles are
    written as ``<row>_<col>_<zoom>.<format>``.
    """

    config = get_product_config(product)
    descriptors = plan_bbox_tiles(
        product=config.product,
        bbox=bbox,
        zoom=zoom,
        projection=projection,
        layer=layer,
        image_format=image_format,
        reprojector=reprojector,
    )
    sink = DirectoryTileSink(output_dir, extension=image_format or DEFAULT_IMAGE_FORMAT)
    engine = BulkFetchEngine(sink, authenticator or StaticTokenAuthenticator(), progress=progress)
    logger.info(
        "Downloading %d %s tiles at zoom %d into %s",
        len(descriptors),
        config.product.value,
        zoom,
        output_dir,
    )
    report = await engine.run(descriptors, concurrency, max_retry_rounds)
    record_fetch_run(config.product.value, requested=len(descriptors), failed=report.failed)
    return descriptors, report
