from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from app.api import get_ingestor, get_resolver
from app.main import create_app
from datastore.base import StoreUnavailableError
from datastore.factory import build_default_store
from datastore.memory_store import InMemoryMeasurementStore
from models.records import DeviceDescriptor
from services.ingestion import IngestionService, build_default_ingestor
from services.registry import DeviceRegistry, build_default_registry
from services.resolver import QueryResolver, build_default_resolver
from settings import get_settings

SENSORS_TOML = """
[[sensors]]
address = "d0f7083ca3b1"
name = "sense"
description = "Living room shelf"

[[sensors]]
address = "f4d55889b1d6"
name = "office"
adjustment = 1.0
"""

_CACHES = (
    get_settings,
    build_default_registry,
    build_default_store,
    build_default_resolver,
    build_default_ingestor,
)


def _clear_caches() -> None:
    for cache in _CACHES:
        cache.cache_clear()


class UnavailableStore(InMemoryMeasurementStore):
    def append(self, measurement) -> None:
        raise StoreUnavailableError("elasticsearch timed out")

    def recent(self, address: str, count: int):
        raise StoreUnavailableError("elasticsearch timed out")


@pytest.fixture
def api_client(tmp_path, monkeypatch) -> Iterator[TestClient]:
    sensors = tmp_path / "sensors.toml"
    sensors.write_text(SENSORS_TOML)
    monkeypatch.setenv("SENSORS_CONFIG_PATH", str(sensors))
    monkeypatch.setenv("TELEMETRY_STORE_BACKEND", "memory")
    monkeypatch.delenv("MEMORY_STORE_PATH", raising=False)
    _clear_caches()

    app = create_app()
    with TestClient(app) as client:
        yield client

    _clear_caches()


def test_lifespan_clears_cached_store(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("TELEMETRY_STORE_BACKEND", "memory")
    monkeypatch.delenv("SENSORS_CONFIG_PATH", raising=False)
    _clear_caches()
    app = create_app()

    with TestClient(app):
        store_during = build_default_store()
        assert build_default_store() is store_during

    store_after = build_default_store()
    try:
        assert store_after is not store_during
    finally:
        _clear_caches()


def test_list_devices(api_client: TestClient) -> None:
    response = api_client.get("/devices")

    assert response.status_code == 200
    assert response.json() == [
        {"address": "d0f7083ca3b1", "name": "sense", "description": "Living room shelf"},
        {"address": "f4d55889b1d6", "name": "office", "description": None},
    ]


def test_ingest_and_query_device(api_client: TestClient) -> None:
    for raw, date in ((22.0, "2024-01-01T00:00:01Z"), (23.5, "2024-01-01T00:00:02Z")):
        response = api_client.post(
            "/measurements",
            json={"address": "d0f7083ca3b1", "tempRawC": raw, "date": date},
        )
        assert response.status_code == 201
        body = response.json()
        assert body["address"] == "d0f7083ca3b1"
        assert body["tempC"] == raw

    response = api_client.get("/devices/d0f7083ca3b1", params={"count": 2})

    assert response.status_code == 200
    payload = response.json()
    assert payload["name"] == "sense"
    assert payload["currentMeasurement"]["tempC"] == 23.5
    assert [m["tempC"] for m in payload["measurements"]] == [23.5, 22.0]
    assert payload["measurements"][0] == payload["currentMeasurement"]
    assert payload["errors"] == []


def test_ingested_measurement_applies_calibration(api_client: TestClient) -> None:
    response = api_client.post(
        "/measurements", json={"address": "f4d55889b1d6", "raw_value": 20.0}
    )

    assert response.status_code == 201
    body = response.json()
    assert body["tempRawC"] == 20.0
    assert body["tempC"] == 21.0
    assert body["tempF"] == 21.0 * 9 / 5 + 32


def test_device_without_measurements(api_client: TestClient) -> None:
    response = api_client.get("/devices/f4d55889b1d6")

    assert response.status_code == 200
    payload = response.json()
    assert payload["currentMeasurement"] is None
    assert payload["measurements"] == []
    assert payload["errors"] == []


def test_unknown_device_returns_not_found(api_client: TestClient) -> None:
    response = api_client.get("/devices/doesnotexist", params={"count": 1})

    assert response.status_code == 404
    assert "doesnotexist" in response.json()["detail"]


def test_non_positive_count_is_bad_request(api_client: TestClient) -> None:
    response = api_client.get("/devices/d0f7083ca3b1", params={"count": 0})

    assert response.status_code == 400


def test_ingest_unknown_device_returns_not_found(api_client: TestClient) -> None:
    response = api_client.post(
        "/measurements", json={"address": "doesnotexist", "tempRawC": 20.0}
    )

    assert response.status_code == 404


def test_ingest_rejects_malformed_payload(api_client: TestClient) -> None:
    response = api_client.post("/measurements", json={"address": "d0f7083ca3b1"})

    assert response.status_code == 422


def test_ingest_reads_raw_value_from_temp_raw_c_key(api_client: TestClient) -> None:
    accepted = api_client.post(
        "/measurements", json={"address": "d0f7083ca3b1", "tempRawC": 19.5}
    )
    rejected = api_client.post(
        "/measurements", json={"address": "d0f7083ca3b1", "rawValue": 19.5}
    )

    assert accepted.status_code == 201
    assert accepted.json()["tempRawC"] == 19.5
    assert rejected.status_code == 422


def test_ingest_reports_unavailable_store(api_client: TestClient) -> None:
    registry = build_default_registry()
    api_client.app.dependency_overrides[get_ingestor] = lambda: IngestionService(
        registry, UnavailableStore()
    )
    try:
        response = api_client.post(
            "/measurements", json={"address": "d0f7083ca3b1", "tempRawC": 20.0}
        )
    finally:
        api_client.app.dependency_overrides.clear()

    assert response.status_code == 503
    assert "timed out" in response.json()["detail"]


def test_query_degrades_when_store_unavailable(api_client: TestClient) -> None:
    registry = DeviceRegistry([DeviceDescriptor(address="d0f7083ca3b1", name="sense")])
    api_client.app.dependency_overrides[get_resolver] = lambda: QueryResolver(
        registry, UnavailableStore()
    )
    try:
        response = api_client.get("/devices/d0f7083ca3b1", params={"count": 3})
    finally:
        api_client.app.dependency_overrides.clear()

    assert response.status_code == 200
    payload = response.json()
    assert payload["name"] == "sense"
    assert payload["currentMeasurement"] is None
    assert payload["measurements"] == []
    assert {error["field"] for error in payload["errors"]} == {
        "currentMeasurement",
        "measurements",
    }


def test_health(api_client: TestClient) -> None:
    assert api_client.get("/health").json() == {"status": "ok"}
