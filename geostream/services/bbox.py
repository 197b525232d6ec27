from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import List, Tuple

from .errors import ConfigurationError, ValidationError
from .products import GEODETIC_PROJECTION, ProductConfig, ProductLine, get_product_config

logger = logging.getLogger(__name__)

GEODETIC_X_LIMIT = 180.0
GEODETIC_Y_LIMIT = 90.0
PROJECTED_X_LIMIT = 20048966.1
PROJECTED_Y_LIMIT = 20037508.34


@dataclass(frozen=True)
class SpatialExtent:
    """A validated bounding box in native ``minY,minX,maxY,maxX`` order."""

    min_y: float
    min_x: float
    max_y: float
    max_x: float
    projection: str | None = None
    tokens: Tuple[str, str, str, str] = field(default=("", "", "", ""), compare=False, repr=False)

    @classmethod
    def parse(cls, bbox: str, projection: str | None = None) -> "SpatialExtent":
        return validate_bbox(bbox, projection)

    @property
    def native_text(self) -> str:
        return ",".join(self.tokens)


def validate_bbox(bbox: str | None, projection: str | None = None) -> SpatialExtent:
    """Parse and validate a ``minY,minX,maxY,maxX`` bounding box.

    Coordinate limits depend on whether a projection override was supplied:
    without one the box is treated as geodetic degrees, with one it is
    checked against the Web-Mercator extent in metres.
    """

    if bbox is None:
        raise ValidationError(["Bbox can not be empty"])

    tokens = [token.strip() for token in bbox.split(",")]
    if len(tokens) != 4:
        raise ValidationError(["Bbox must be exactly 4 coordinates"])

    values: List[float] = []
    for token in tokens:
        try:
            value = float(token)
        except ValueError:
            raise ValidationError(["Bbox coordinates must be numeric."]) from None
        if not math.isfinite(value):
            raise ValidationError(["Bbox coordinates must be numeric."])
        values.append(value)

    min_y, min_x, max_y, max_x = values
    violations: List[str] = []
    if min_y >= max_y:
        violations.append("Improper order of bbox: minY is greater than maxY.")
    if min_x >= max_x:
        violations.append("Improper order of bbox: minX is greater than maxX.")

    projection = projection.strip() if projection else None
    if projection is None:
        if max(abs(min_x), abs(max_x)) > GEODETIC_X_LIMIT:
            violations.append(
                "X coordinates out of range -180 - 180. Did you mean to set a projection?"
            )
        if max(abs(min_y), abs(max_y)) > GEODETIC_Y_LIMIT:
            violations.append(
                "Y coordinates out of range -90 - 90. Did you mean to set a projection?"
            )
    else:
        if max(abs(min_x), abs(max_x)) > PROJECTED_X_LIMIT:
            violations.append(
                f"X coordinates out of range -{PROJECTED_X_LIMIT} - {PROJECTED_X_LIMIT}"
            )
        if max(abs(min_y), abs(max_y)) > PROJECTED_Y_LIMIT:
            violations.append(
                f"Y coordinates out of range -{PROJECTED_Y_LIMIT} - {PROJECTED_Y_LIMIT}"
            )

    if violations:
        raise ValidationError(violations)

    return SpatialExtent(
        min_y=min_y,
        min_x=min_x,
        max_y=max_y,
        max_x=max_x,
        projection=projection,
        tokens=(tokens[0], tokens[1], tokens[2], tokens[3]),
    )


def wire_projection(extent: SpatialExtent, product: ProductLine | ProductConfig | str) -> str | None:
    config = product if isinstance(product, ProductConfig) else get_product_config(product)
    if extent.projection:
        return extent.projection
    if config.forces_geodetic:
        return GEODETIC_PROJECTION
    return None


def to_wire_order(extent: SpatialExtent, product: ProductLine | ProductConfig | str) -> str:
    """Reorder ``extent`` into the ``minX,minY,maxX,maxY,PROJ`` form the services expect.

    Boxes without a projection are passed through untouched unless the product
    line requires the geodetic code to be stated explicitly.
    """

    projection = wire_projection(extent, product)
    if projection is None:
        return extent.native_text
    min_y, min_x, max_y, max_x = extent.tokens
    return ",".join((min_x, min_y, max_x, max_y, projection))


def combine_bbox_and_filter(
    extent: SpatialExtent,
    cql_filter: str,
    product: ProductLine | ProductConfig | str,
) -> str:
    """Fold a bounding box into an attribute filter as a single CQL expression."""

    config = product if isinstance(product, ProductConfig) else get_product_config(product)
    projection = wire_projection(extent, config)
    if projection is None:
        raise ConfigurationError("Must provide the projection when combining a bbox with a filter")

    parts = to_wire_order(extent, config).split(",")
    parts[4] = f"'{projection}'"
    return f"BBOX({config.geometry_field},{','.join(parts)}) AND ({cql_filter})"
