from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from typing import Dict

from .errors import ConfigurationError

API_BASE_URL_ENV = "GEOSTREAM_API_BASE_URL"
API_VERSION_ENV = "GEOSTREAM_API_VERSION"
DEFAULT_API_BASE_URL = "https://api.maxar.com"
DEFAULT_API_VERSION = "v1"
SDK_VERSION = "Python_0.1.0"

GEODETIC_PROJECTION = "EPSG:4326"


class ProductLine(str, Enum):
    """Identifiers for the service families exposed by the platform."""

    STREAMING = "streaming"
    BASEMAPS = "basemaps"
    ANALYTICS = "analytics"


class ServiceKind(str, Enum):
    WFS = "wfs"
    WMS = "wms"
    WMTS = "wmts"


@dataclass(frozen=True)
class ProductConfig:
    """Per product line endpoints and defaults."""

    product: ProductLine
    wfs_path: str
    wms_path: str
    wmts_path: str
    geometry_field: str
    default_layer: str | None
    default_typename: str | None
    forces_geodetic: bool = False
    label: str | None = None

    def path_for(self, service: ServiceKind) -> str:
        if service == ServiceKind.WFS:
            return self.wfs_path
        if service == ServiceKind.WMS:
            return self.wms_path
        return self.wmts_path

    def base_url(self, service: ServiceKind) -> str:
        """Resolve the absolute endpoint for ``service`` using the configured API root."""

        root = api_base_url().rstrip("/")
        return f"{root}/{self.path_for(service).format(version=api_version())}"

    def layer(self, override: str | None = None) -> str:
        if override:
            return override
        if self.default_layer is None:
            raise ConfigurationError(
                f"Calls to {self.product.value} must have a layer set explicitly."
            )
        return self.default_layer

    def typename(self, override: str | None = None) -> str:
        if override:
            return override
        if self.default_typename is None:
            raise ConfigurationError(
                f"{self.product.value.capitalize()} calls must have a typename set explicitly."
            )
        return self.default_typename


PRODUCT_CONFIGS: Dict[ProductLine, ProductConfig] = {
    ProductLine.STREAMING: ProductConfig(
        product=ProductLine.STREAMING,
        wfs_path="streaming/{version}/ogc/wfs",
        wms_path="streaming/{version}/ogc/wms",
        wmts_path="streaming/{version}/ogc/gwc/service/wmts",
        geometry_field="featureGeometry",
        default_layer="Maxar:Imagery",
        default_typename="Maxar:FinishedFeature",
        label="Streaming imagery",
    ),
    ProductLine.BASEMAPS: ProductConfig(
        product=ProductLine.BASEMAPS,
        wfs_path="basemaps/{version}/seamlines/wfs",
        wms_path="basemaps/{version}/seamlines/ows",
        wmts_path="basemaps/{version}/seamlines/gwc/service/wmts",
        geometry_field="seamline_geometry",
        default_layer="Maxar:seamline",
        default_typename="seamline",
        label="Basemap seamlines",
    ),
    ProductLine.ANALYTICS: ProductConfig(
        product=ProductLine.ANALYTICS,
        wfs_path="analytics/{version}/vector/change-detection/Maxar/ows",
        wms_path="analytics/{version}/vector/change-detection/Maxar/ows",
        wmts_path="analytics/{version}/vector/change-detection/Maxar/gwc/service/wmts",
        geometry_field="change_area_polygon_3857",
        default_layer=None,
        default_typename=None,
        forces_geodetic=True,
        label="Change detection analytics",
    ),
}


def get_product_config(product: ProductLine | str) -> ProductConfig:
    if isinstance(product, str):
        try:
            product = ProductLine(product)
        except ValueError as exc:
            available = ", ".join(item.value for item in ProductLine)
            raise ConfigurationError(
                f"Unknown product line '{product}'. Available product lines: {available}"
            ) from exc
    return PRODUCT_CONFIGS[product]


def api_base_url() -> str:
    override = os.getenv(API_BASE_URL_ENV, "").strip()
    return override or DEFAULT_API_BASE_URL


def api_version() -> str:
    override = os.getenv(API_VERSION_ENV, "").strip()
    return override or DEFAULT_API_VERSION
