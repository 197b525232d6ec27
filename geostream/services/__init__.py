"""Service utilities exposed by the ``geostream.services`` package."""

from .bbox import SpatialExtent, combine_bbox_and_filter, to_wire_order, validate_bbox
from .errors import (
    ConfigurationError,
    GeostreamError,
    ReprojectionError,
    TransientFetchError,
    ValidationError,
)
from .fetcher import BulkFetchEngine, FetchReport
from .filters import combine_filters, validate_filter
from .planner import TileRequestDescriptor, WmtsUrlBuilder, plan_tiles
from .products import ProductLine, get_product_config
from .tiles import TileCoordinate, to_tile

__all__ = [
    "BulkFetchEngine",
    "ConfigurationError",
    "FetchReport",
    "GeostreamError",
    "ProductLine",
    "ReprojectionError",
    "SpatialExtent",
    "TileCoordinate",
    "TileRequestDescriptor",
    "TransientFetchError",
    "ValidationError",
    "WmtsUrlBuilder",
    "combine_bbox_and_filter",
    "combine_filters",
    "get_product_config",
    "plan_tiles",
    "to_tile",
    "to_wire_order",
    "validate_bbox",
    "validate_filter",
]
