"""Conversion of coordinates to WMTS tile matrix indices.

Two tile matrix sets are served. ``EPSG:4326`` uses a geodetic grid that is
two tiles wide and one tile tall at zoom 0 and doubles on both axes per level
up to zoom 21. Every other projection is served on the Web-Mercator pyramid,
so points are first brought back to geodetic degrees and then indexed with
the usual slippy-map formula.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Protocol, Tuple

from pyproj import Transformer
from pyproj.exceptions import CRSError, ProjError

from .errors import ReprojectionError, ValidationError
from .products import GEODETIC_PROJECTION

logger = logging.getLogger(__name__)

GEODETIC_MIN_ZOOM = 0
GEODETIC_MAX_ZOOM = 21
WEB_MERCATOR_MAX_ZOOM = 30

Point = Tuple[float, float]


def _build_geodetic_matrix() -> Dict[int, Tuple[int, int]]:
    matrix: Dict[int, Tuple[int, int]] = {}
    height = 1
    for zoom in range(GEODETIC_MIN_ZOOM, GEODETIC_MAX_ZOOM + 1):
        matrix[zoom] = (height * 2, height)
        height *= 2
    return matrix


# zoom -> (matrix width, matrix height)
GEODETIC_TILE_MATRIX: Dict[int, Tuple[int, int]] = _build_geodetic_matrix()


@dataclass(frozen=True)
class TileCoordinate:
    row: int
    col: int
    zoom: int
    projection: str


class Reprojector(Protocol):
    def transform(self, point: Point, from_projection: str, to_projection: str) -> Point:
        ...


@lru_cache(maxsize=32)
def _transformer(from_projection: str, to_projection: str) -> Transformer:
    return Transformer.from_crs(from_projection, to_projection, always_xy=True)


class PyprojReprojector:
    """Reproject ``(x, y)`` points with pyproj, x being easting/longitude."""

    def transform(self, point: Point, from_projection: str, to_projection: str) -> Point:
        try:
            transformer = _transformer(from_projection, to_projection)
            x, y = transformer.transform(point[0], point[1], errcheck=True)
        except (CRSError, ProjError) as exc:
            raise ReprojectionError(
                f"Unable to transform {point} from {from_projection} to {to_projection}: {exc}"
            ) from exc
        if not (math.isfinite(x) and math.isfinite(y)):
            raise ReprojectionError(
                f"Transforming {point} from {from_projection} to {to_projection} produced no result"
            )
        return float(x), float(y)


def geodetic_matrix(zoom: int) -> Tuple[int, int]:
    """Return ``(width, height)`` of the geodetic tile matrix at ``zoom``."""

    try:
        return GEODETIC_TILE_MATRIX[zoom]
    except KeyError:
        raise ValidationError(
            [
                "Unable to determine matrix dimensions for zoom level "
                f"{zoom}. Zoom levels for {GEODETIC_PROJECTION} should be between "
                f"{GEODETIC_MIN_ZOOM} - {GEODETIC_MAX_ZOOM}"
            ]
        ) from None


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class GeodeticTileScheme:
    """Direct lookup on the EPSG:4326 tile matrix set."""

    name = "geodetic"

    def to_tile(self, lat: float, lon: float, zoom: int) -> Tuple[int, int]:
        width, height = geodetic_matrix(zoom)
        col = _round_half_up((lon + 180.0) * (width / 360.0))
        row = _round_half_up((90.0 - lat) * (height / 180.0))
        return row, col


class WebMercatorTileScheme:
    """Reproject to geodetic degrees, then apply the slippy-map formula."""

    name = "web_mercator"

    def __init__(self, projection: str, reprojector: Reprojector | None = None) -> None:
        self.projection = projection
        self.reprojector = reprojector or PyprojReprojector()

    def to_tile(self, lat: float, lon: float, zoom: int) -> Tuple[int, int]:
        if not 0 <= zoom <= WEB_MERCATOR_MAX_ZOOM:
            raise ValidationError(
                [
                    f"Zoom level {zoom} is out of range. Zoom levels for {self.projection} "
                    f"should be between 0 - {WEB_MERCATOR_MAX_ZOOM}"
                ]
            )
        geo_lon, geo_lat = self.reprojector.transform(
            (lon, lat), self.projection, GEODETIC_PROJECTION
        )
        n = 1 << zoom
        lat_rad = math.radians(geo_lat)
        col = math.floor((geo_lon + 180.0) / 360.0 * n)
        row = math.floor((1.0 - math.asinh(math.tan(lat_rad)) / math.pi) / 2.0 * n)
        return int(row), int(col)


def tile_scheme(projection: str | None, reprojector: Reprojector | None = None):
    if projection is None or projection.upper() == GEODETIC_PROJECTION:
        return GeodeticTileScheme()
    return WebMercatorTileScheme(projection, reprojector)


def to_tile(
    lat: float,
    lon: float,
    zoom: int,
    projection: str | None = GEODETIC_PROJECTION,
    reprojector: Reprojector | None = None,
) -> Tuple[int, int]:
    """Convert a point in ``projection`` to ``(row, col)`` at ``zoom``.

    ``lat``/``lon`` are the point's Y and X in its native projection. Indices
    are not clamped to the matrix; callers decide whether they are sane for
    the service they address.
    """

    return tile_scheme(projection, reprojector).to_tile(lat, lon, zoom)


def to_tile_coordinate(
    lat: float,
    lon: float,
    zoom: int,
    projection: str | None = GEODETIC_PROJECTION,
    reprojector: Reprojector | None = None,
) -> TileCoordinate:
    row, col = to_tile(lat, lon, zoom, projection, reprojector)
    return TileCoordinate(row=row, col=col, zoom=zoom, projection=projection or GEODETIC_PROJECTION)
