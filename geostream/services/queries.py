"""Query string construction for the WFS, WMS and WMTS endpoints."""

from __future__ import annotations

import logging
from typing import Dict, Tuple

import httpx

from .bbox import combine_bbox_and_filter, to_wire_order, validate_bbox
from .errors import ConfigurationError, TransientFetchError, ValidationError
from .filters import validate_filter
from .products import (
    SDK_VERSION,
    ProductConfig,
    ProductLine,
    ServiceKind,
    get_product_config,
)

logger = logging.getLogger(__name__)

IMAGE_FORMATS: Tuple[str, ...] = ("jpeg", "png", "geotiff")
DEFAULT_IMAGE_FORMAT = "jpeg"
WFS_VERSION = "2.0.0"
WMS_VERSION = "1.3.0"
WMS_DEFAULT_SIZE = 512
OUTPUT_FORMATS: Dict[str, str] = {"shapefile": "shape-zip", "csv": "csv"}
REQUEST_TIMEOUT = httpx.Timeout(30.0)


def image_format_param(image_format: str | None) -> str:
    """Translate ``jpeg``/``png``/``geotiff`` into the MIME type the services expect."""

    if image_format is None:
        return f"image/{DEFAULT_IMAGE_FORMAT}"
    if image_format not in IMAGE_FORMATS:
        raise ValidationError(
            [
                "Format not recognized, please use acceptable format for downloading image. "
                f"Format provided: {image_format}"
            ]
        )
    return f"image/{image_format}"


def _config(product: ProductLine | ProductConfig | str) -> ProductConfig:
    return product if isinstance(product, ProductConfig) else get_product_config(product)


def build_wfs_params(
    product: ProductLine | ProductConfig | str,
    *,
    bbox: str | None = None,
    projection: str | None = None,
    cql_filter: str | None = None,
    feature_id: str | None = None,
    typename: str | None = None,
    request_type: str | None = None,
    output: str | None = None,
) -> Dict[str, str]:
    """Assemble WFS GetFeature parameters.

    A bbox must come with a projection. When a bbox and a filter are both
    present they are merged into a single ``cql_filter`` so the service applies
    them together. A feature id overrides any attribute filter.
    """

    config = _config(product)
    params: Dict[str, str] = {
        "service": "WFS",
        "request": "GetFeature",
        "typename": config.typename(typename),
        "outputFormat": "application/json",
        "version": WFS_VERSION,
        "SDKversion": SDK_VERSION,
    }

    if feature_id is not None:
        cql_filter = f"featureId='{feature_id}'"
    elif cql_filter is not None:
        validate_filter(cql_filter)

    if bbox is not None:
        if projection is None:
            raise ConfigurationError("Must provide the projection with a bbox")
        extent = validate_bbox(bbox, projection)
        params["srsname"] = projection
        if cql_filter is not None:
            params["cql_filter"] = combine_bbox_and_filter(extent, cql_filter, config)
        else:
            params["bbox"] = to_wire_order(extent, config)
    elif cql_filter is not None:
        params["cql_filter"] = cql_filter
    else:
        raise ConfigurationError("Search function must have a BBOX or a Filter")

    if request_type is not None:
        params["request"] = request_type
        params.pop("outputFormat", None)

    if output is not None:
        try:
            params["outputFormat"] = OUTPUT_FORMATS[output]
        except KeyError:
            raise ValidationError(
                [f"Output {output} not recognized, use one of: {', '.join(OUTPUT_FORMATS)}"]
            ) from None
    return params


def build_wms_params(
    product: ProductLine | ProductConfig | str,
    *,
    bbox: str | None,
    projection: str | None,
    cql_filter: str | None = None,
    feature_id: str | None = None,
    layer: str | None = None,
    width: int = WMS_DEFAULT_SIZE,
    height: int = WMS_DEFAULT_SIZE,
    image_format: str | None = None,
) -> Dict[str, str]:
    """Assemble WMS GetMap parameters for a single rendered image."""

    config = _config(product)
    if bbox is None:
        raise ConfigurationError("Search function must have a BBOX.")
    if projection is None:
        raise ConfigurationError("Must provide the projection with a bbox")
    if width <= 0 or height <= 0:
        raise ValidationError([f"Image size must be positive, got {width}x{height}"])

    extent = validate_bbox(bbox, projection)
    params: Dict[str, str] = {
        "service": "WMS",
        "request": "GetMap",
        "version": WMS_VERSION,
        "crs": projection,
        "height": str(height),
        "width": str(width),
        "layers": config.layer(layer),
        "format": image_format_param(image_format),
        "bbox": to_wire_order(extent, config),
        "SDKversion": SDK_VERSION,
    }
    if feature_id is not None:
        params["coverage_cql_filter"] = f"featureId='{feature_id}'"
    elif cql_filter is not None:
        validate_filter(cql_filter)
        params["cql_filter"] = cql_filter
    return params


async def send_request(
    product: ProductLine | ProductConfig | str,
    service: ServiceKind,
    params: Dict[str, str],
    token: str,
    *,
    client: httpx.AsyncClient | None = None,
) -> httpx.Response:
    """Issue one authenticated GET against ``service`` for ``product``.

    Transport failures and non-2xx responses raise :class:`TransientFetchError`.
    """

    url = _config(product).base_url(service)
    headers = {"Authorization": f"Bearer {token}"}

    async def _get(active: httpx.AsyncClient) -> httpx.Response:
        try:
            response = await active.get(url, params=params, headers=headers)
        except httpx.RequestError as exc:
            raise TransientFetchError(f"request to {url} failed: {exc}") from exc
        if not 200 <= response.status_code < 300:
            logger.warning("%s request to %s failed with status %s", service.value, url, response.status_code)
            raise TransientFetchError(f"{response.status_code} from {url}")
        return response

    if client is not None:
        return await _get(client)
    async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as owned:
        return await _get(owned)
