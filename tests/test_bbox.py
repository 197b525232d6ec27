import pytest

from geostream.services.bbox import (
    PROJECTED_X_LIMIT,
    PROJECTED_Y_LIMIT,
    SpatialExtent,
    combine_bbox_and_filter,
    to_wire_order,
    validate_bbox,
)
from geostream.services.errors import ConfigurationError, ValidationError
from geostream.services.products import ProductLine

BBOX = "39.84387,-105.05608,39.95133,-104.94827"
BBOX_3857 = "4828455.4171,-11686562.3554,4830614.7631,-11684030.3789"


def test_valid_geodetic_bbox_parses_in_native_order():
    extent = validate_bbox(BBOX)

    assert extent.min_y == pytest.approx(39.84387)
    assert extent.min_x == pytest.approx(-105.05608)
    assert extent.max_y == pytest.approx(39.95133)
    assert extent.max_x == pytest.approx(-104.94827)
    assert extent.projection is None


def test_projected_bbox_uses_projected_limits():
    extent = validate_bbox(BBOX_3857, "EPSG:3857")

    assert extent.projection == "EPSG:3857"


def test_projected_values_without_projection_are_rejected():
    with pytest.raises(ValidationError) as exc:
        validate_bbox(BBOX_3857)

    assert len(exc.value.violations) == 2
    assert "Did you mean to set a projection?" in exc.value.violations[0]


@pytest.mark.parametrize(
    "bbox",
    [
        "39.9,-105.0,39.8,-104.9",
        "39.8,-104.9,39.9,-105.0",
        "39.8,-105.0,39.8,-104.9",
        "-91,-105.0,39.9,-104.9",
        "39.8,-181,39.9,-104.9",
    ],
)
def test_any_single_geodetic_violation_fails(bbox):
    with pytest.raises(ValidationError):
        validate_bbox(bbox)


def test_projected_limits_are_enforced():
    validate_bbox(f"{-PROJECTED_Y_LIMIT},{-PROJECTED_X_LIMIT},{PROJECTED_Y_LIMIT},{PROJECTED_X_LIMIT}", "EPSG:3857")

    with pytest.raises(ValidationError) as exc:
        validate_bbox(f"0,0,{PROJECTED_Y_LIMIT + 1},{PROJECTED_X_LIMIT + 1}", "EPSG:3857")
    assert len(exc.value.violations) == 2


@pytest.mark.parametrize("bbox", ["1,2,3", "1,2,3,4,5", "a,b,c,d", "1,2,nan,4", ""])
def test_malformed_bbox_is_rejected(bbox):
    with pytest.raises(ValidationError):
        validate_bbox(bbox)


def test_order_and_range_violations_are_aggregated():
    with pytest.raises(ValidationError) as exc:
        validate_bbox("95,200,-95,-200")

    assert len(exc.value.violations) == 4


@pytest.mark.parametrize("product", list(ProductLine))
def test_wire_order_is_a_permutation_with_projection(product):
    extent = validate_bbox("1.5,2.5,3.5,4.5", "EPSG:3857")

    assert to_wire_order(extent, product) == "2.5,1.5,4.5,3.5,EPSG:3857"


def test_wire_order_without_projection_passes_native_text_through():
    extent = validate_bbox(BBOX)

    assert to_wire_order(extent, ProductLine.STREAMING) == BBOX


def test_analytics_forces_geodetic_projection_code():
    extent = validate_bbox("24.678218,54.773712,25.725684,56.115417")

    wire = to_wire_order(extent, ProductLine.ANALYTICS)

    assert wire == "54.773712,24.678218,56.115417,25.725684,EPSG:4326"


@pytest.mark.parametrize(
    "product, geometry",
    [
        (ProductLine.STREAMING, "featureGeometry"),
        (ProductLine.BASEMAPS, "seamline_geometry"),
        (ProductLine.ANALYTICS, "change_area_polygon_3857"),
    ],
)
def test_combined_filter_uses_product_geometry_field(product, geometry):
    extent = validate_bbox(BBOX, "EPSG:4326")

    combined = combine_bbox_and_filter(extent, "cloudCover<0.20", product)

    assert combined == (
        f"BBOX({geometry},-105.05608,39.84387,-104.94827,39.95133,'EPSG:4326') AND (cloudCover<0.20)"
    )


def test_combined_filter_requires_projection():
    extent = validate_bbox(BBOX)

    with pytest.raises(ConfigurationError):
        combine_bbox_and_filter(extent, "cloudCover<0.20", ProductLine.STREAMING)


def test_extent_is_immutable():
    extent = SpatialExtent.parse(BBOX)

    with pytest.raises(AttributeError):
        extent.min_y = 0.0
