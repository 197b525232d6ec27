from __future__ import annotations

import logging
from typing import Dict, List

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel
from sqlmodel import Session

from .database import DATA_DIR, get_session, init_db
from .services import errors
from .services.bbox import combine_bbox_and_filter, to_wire_order, validate_bbox
from .services.downloads import download_bbox_tiles, plan_bbox_tiles
from .services.fetcher import DEFAULT_MAX_RETRY_ROUNDS
from .services.filters import validate_filter
from .services.products import PRODUCT_CONFIGS, ProductLine
from .services.usage import usage_summary

app = FastAPI(title="Geostream tile query service", version="0.1.0")

TILE_DOWNLOAD_DIR = DATA_DIR / "tiles"

logger = logging.getLogger(__name__)


class FilterRequest(BaseModel):
    filter: str | None = None


class BboxRequest(BaseModel):
    bbox: str
    projection: str | None = None
    product: ProductLine = ProductLine.STREAMING
    filter: str | None = None


class TilePlanRequest(BaseModel):
    bbox: str
    zoom: int
    product: ProductLine = ProductLine.STREAMING
    projection: str | None = None
    layer: str | None = None
    image_format: str | None = None


class TileDownloadRequest(TilePlanRequest):
    concurrency: int | None = None
    max_retry_rounds: int = DEFAULT_MAX_RETRY_ROUNDS


def _http_error(exc: errors.GeostreamError) -> HTTPException:
    if isinstance(exc, errors.ValidationError):
        return HTTPException(status_code=422, detail=exc.violations)
    if isinstance(exc, errors.ConfigurationError):
        return HTTPException(status_code=400, detail=str(exc))
    return HTTPException(status_code=422, detail=str(exc))


@app.on_event("startup")
def on_startup() -> None:
    init_db()


@app.get("/products")
def list_products() -> List[Dict[str, object]]:
    return [
        {
            "key": product.value,
            "label": config.label,
            "geometry_field": config.geometry_field,
            "default_layer": config.default_layer,
            "default_typename": config.default_typename,
        }
        for product, config in PRODUCT_CONFIGS.items()
    ]


@app.post("/filters/validate")
def check_filter(request: FilterRequest) -> Dict[str, object]:
    try:
        clauses = validate_filter(request.filter)
    except errors.ValidationError as exc:
        raise _http_error(exc) from exc
    return {
        "valid": True,
        "clauses": [
            {"field": clause.field, "operator": clause.operator, "literal": clause.literal}
            for clause in clauses
        ],
    }


@app.post("/bbox/normalize")
def normalize_bbox(request: BboxRequest) -> Dict[str, object]:
    try:
        extent = validate_bbox(request.bbox, request.projection)
        payload: Dict[str, object] = {"bbox": to_wire_order(extent, request.product)}
        if request.filter is not None:
            validate_filter(request.filter)
            payload["cql_filter"] = combine_bbox_and_filter(extent, request.filter, request.product)
    except errors.GeostreamError as exc:
        raise _http_error(exc) from exc
    return payload


@app.post("/tiles/plan")
def plan_tile_requests(request: TilePlanRequest) -> Dict[str, object]:
    try:
        descriptors = plan_bbox_tiles(
            product=request.product,
            bbox=request.bbox,
            zoom=request.zoom,
            projection=request.projection,
            layer=request.layer,
            image_format=request.image_format,
        )
    except errors.GeostreamError as exc:
        raise _http_error(exc) from exc
    return {
        "count": len(descriptors),
        "tiles": [{"key": descriptor.key, "url": descriptor.url} for descriptor in descriptors],
    }


@app.post("/tiles/download")
async def download_tiles(request: TileDownloadRequest) -> Dict[str, object]:
    output_dir = TILE_DOWNLOAD_DIR / request.product.value / str(request.zoom)
    try:
        descriptors, report = await download_bbox_tiles(
            product=request.product,
            bbox=request.bbox,
            zoom=request.zoom,
            output_dir=output_dir,
            projection=request.projection,
            layer=request.layer,
            image_format=request.image_format,
            concurrency=request.concurrency,
            max_retry_rounds=request.max_retry_rounds,
        )
    except errors.GeostreamError as exc:
        raise _http_error(exc) from exc

    if report.failed:
        logger.warning("Download for %s finished with %d failed tiles", request.product.value, report.failed)
    return {
        "requested": len(descriptors),
        "succeeded": report.succeeded,
        "failed": report.failed,
        "attempts": report.attempts,
        "failures": report.failures,
        "output_dir": str(output_dir),
    }


@app.get("/usage")
def read_usage(session: Session = Depends(get_session)) -> List[Dict[str, object]]:
    return usage_summary(session)
