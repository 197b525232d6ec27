import httpx
from fastapi.testclient import TestClient

import geostream.main as main
from geostream.services.usage import record_fetch_run

client = TestClient(main.app)


def test_filter_validation_endpoint_returns_clauses():
    response = client.post("/filters/validate", json={"filter": "cloudCover<0.20"})

    assert response.status_code == 200
    assert response.json()["clauses"] == [
        {"field": "cloudCover", "operator": "<", "literal": "0.20"}
    ]


def test_filter_validation_endpoint_lists_violations():
    response = client.post("/filters/validate", json={"filter": "(cloudCover<1.5)AND(sunAzimuth>400)"})

    assert response.status_code == 422
    assert len(response.json()["detail"]) == 2


def test_bbox_normalization_for_analytics():
    response = client.post(
        "/bbox/normalize",
        json={"bbox": "24.678218,54.773712,25.725684,56.115417", "product": "analytics"},
    )

    assert response.status_code == 200
    assert response.json() == {"bbox": "54.773712,24.678218,56.115417,25.725684,EPSG:4326"}


def test_bbox_normalization_with_filter():
    response = client.post(
        "/bbox/normalize",
        json={
            "bbox": "39.84387,-105.05608,39.95133,-104.94827",
            "projection": "EPSG:4326",
            "filter": "cloudCover<0.20",
        },
    )

    assert response.status_code == 200
    assert response.json()["cql_filter"].startswith("BBOX(featureGeometry,-105.05608,")


def test_bbox_filter_without_projection_is_a_configuration_error():
    response = client.post(
        "/bbox/normalize",
        json={"bbox": "39.84387,-105.05608,39.95133,-104.94827", "filter": "cloudCover<0.20"},
    )

    assert response.status_code == 400


def test_tile_plan_endpoint():
    response = client.post(
        "/tiles/plan",
        json={"bbox": "39.84387,-105.05608,39.95133,-104.94827", "zoom": 11, "projection": "EPSG:4326"},
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["count"] == 6
    assert {tile["key"] for tile in payload["tiles"]} >= {"569_853_11", "571_854_11"}


def test_tile_plan_rejects_bad_zoom():
    response = client.post(
        "/tiles/plan",
        json={"bbox": "39.84387,-105.05608,39.95133,-104.94827", "zoom": 30, "projection": "EPSG:4326"},
    )

    assert response.status_code == 422


def test_tile_plan_rejects_areas_above_the_tile_limit():
    response = client.post("/tiles/plan", json={"bbox": "-89,-179,89,179", "zoom": 8})

    assert response.status_code == 422
    assert "130305 tiles" in response.json()["detail"][0]


def test_tile_download_endpoint(tmp_path, monkeypatch, memory_engine):
    class DummyResponse:
        status_code = 200
        content = b"tile"
        text = ""

    class MockAsyncClient:
        def __init__(self, *args, **kwargs):
            pass

        async def __aenter__(self):
            return self

        async def __aexit__(self, exc_type, exc, tb):
            return None

        async def get(self, url, params=None, headers=None):
            return DummyResponse()

    monkeypatch.setattr(httpx, "AsyncClient", MockAsyncClient)
    monkeypatch.setattr(main, "TILE_DOWNLOAD_DIR", tmp_path)
    monkeypatch.setenv("GEOSTREAM_API_TOKEN", "token")

    response = client.post(
        "/tiles/download",
        json={
            "bbox": "39.84387,-105.05608,39.95133,-104.94827",
            "zoom": 11,
            "projection": "EPSG:4326",
            "product": "basemaps",
        },
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["requested"] == 6
    assert payload["failed"] == 0
    assert len(list((tmp_path / "basemaps" / "11").iterdir())) == 6


def test_usage_endpoint(memory_engine):
    record_fetch_run("streaming", requested=4, failed=1)

    response = client.get("/usage")

    assert response.status_code == 200
    assert response.json()[0]["failure_count"] == 1


def test_products_endpoint_lists_every_product_line():
    response = client.get("/products")

    assert [item["key"] for item in response.json()] == ["streaming", "basemaps", "analytics"]
