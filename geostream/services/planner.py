from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List

import httpx

from .bbox import SpatialExtent
from .errors import ValidationError
from .products import (
    GEODETIC_PROJECTION,
    SDK_VERSION,
    ProductConfig,
    ProductLine,
    ServiceKind,
    get_product_config,
)
from .queries import image_format_param
from .tiles import Reprojector, tile_scheme

logger = logging.getLogger(__name__)

WMTS_VERSION = "1.1.0"

UrlTemplate = Callable[[int, int, int], str]


@dataclass(frozen=True)
class TileRequestDescriptor:
    """One addressable tile fetch; ``key`` doubles as the output filename stem."""

    key: str
    url: str

    @staticmethod
    def make_key(row: int, col: int, zoom: int) -> str:
        return f"{row}_{col}_{zoom}"

    @property
    def indices(self) -> tuple[int, int, int]:
        row, col, zoom = (int(part) for part in self.key.split("_"))
        return row, col, zoom


class WmtsUrlBuilder:
    """Build GetTile URLs for one product line, layer and image format."""

    def __init__(
        self,
        product: ProductLine | ProductConfig | str,
        *,
        projection: str | None = None,
        layer: str | None = None,
        image_format: str | None = None,
    ) -> None:
        self.config = product if isinstance(product, ProductConfig) else get_product_config(product)
        self.base_url = self.config.base_url(ServiceKind.WMTS)
        self.tile_matrix_set = projection or GEODETIC_PROJECTION
        self.layer = self.config.layer(layer)
        self.format = image_format_param(image_format)

    def params(self, row: int, col: int, zoom: int) -> Dict[str, str]:
        return {
            "service": "WMTS",
            "request": "GetTile",
            "version": WMTS_VERSION,
            "Layer": self.layer,
            "format": self.format,
            "TileMatrixSet": self.tile_matrix_set,
            "TileMatrix": f"{self.tile_matrix_set}:{zoom}",
            "tileRow": str(row),
            "tileCol": str(col),
            "SDKversion": SDK_VERSION,
        }

    def __call__(self, row: int, col: int, zoom: int) -> str:
        return str(httpx.URL(self.base_url, params=self.params(row, col, zoom)))


def plan_tiles(
    extent: SpatialExtent,
    zoom: int,
    url_for: UrlTemplate,
    reprojector: Reprojector | None = None,
    max_tiles: int | None = None,
) -> List[TileRequestDescriptor]:
    """Enumerate one request descriptor per tile covering ``extent`` at ``zoom``.

    With ``max_tiles`` set, a rectangle holding more tiles is rejected from
    its corner indices before any descriptor is built.
    """

    scheme = tile_scheme(extent.projection, reprojector)
    first_row, first_col = scheme.to_tile(extent.min_y, extent.min_x, zoom)
    second_row, second_col = scheme.to_tile(extent.max_y, extent.max_x, zoom)

    # Latitude grows northwards while rows grow southwards, so corners can invert.
    min_row, max_row = sorted((first_row, second_row))
    min_col, max_col = sorted((first_col, second_col))

    count = (max_row - min_row + 1) * (max_col - min_col + 1)
    if max_tiles is not None and count > max_tiles:
        raise ValidationError(
            [
                f"Requested area requires {count} tiles. Reduce coverage or lower the "
                f"zoom level to stay below the limit of {max_tiles} requests per run."
            ]
        )

    descriptors: List[TileRequestDescriptor] = []
    for col in range(min_col, max_col + 1):
        for row in range(min_row, max_row + 1):
            descriptors.append(
                TileRequestDescriptor(
                    key=TileRequestDescriptor.make_key(row, col, zoom),
                    url=url_for(row, col, zoom),
                )
            )

    logger.debug(
        "Planned %d %s tiles at zoom %d (rows %d-%d, cols %d-%d)",
        len(descriptors),
        scheme.name,
        zoom,
        min_row,
        max_row,
        min_col,
        max_col,
    )
    return descriptors


def build_wmts_tile_params(
    product: ProductLine | ProductConfig | str,
    *,
    row: int,
    col: int,
    zoom: int,
    projection: str | None = None,
    layer: str | None = None,
    image_format: str | None = None,
) -> Dict[str, str]:
    """Parameters for a single GetTile request."""

    builder = WmtsUrlBuilder(product, projection=projection, layer=layer, image_format=image_format)
    return builder.params(row, col, zoom)
