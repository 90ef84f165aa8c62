from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

import pytest

from datastore.base import StoreInvalidError, StoreUnavailableError
from datastore.memory_store import InMemoryMeasurementStore
from models.records import DeviceDescriptor, Measurement
from services.conversion import to_fahrenheit
from services.ingestion import IngestionService
from services.registry import DeviceNotFoundError, DeviceRegistry
from services.resolver import QueryResolver

ADDRESS = "d0f7083ca3b1"


def _at(seconds: int) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


class UnavailableStore:
    def append(self, measurement: Measurement) -> None:
        raise StoreUnavailableError("connection refused")

    def latest(self, address: str) -> Optional[Measurement]:
        raise StoreUnavailableError("connection refused")

    def recent(self, address: str, count: int) -> List[Measurement]:
        raise StoreUnavailableError("connection refused")

    def close(self) -> None:
        pass


class CountingStore(InMemoryMeasurementStore):
    def __init__(self) -> None:
        super().__init__()
        self.calls: List[str] = []

    def latest(self, address: str) -> Optional[Measurement]:
        self.calls.append("latest")
        return super().latest(address)

    def recent(self, address: str, count: int) -> list[Measurement]:
        self.calls.append("recent")
        return super().recent(address, count)


@pytest.fixture()
def registry() -> DeviceRegistry:
    return DeviceRegistry(
        [
            DeviceDescriptor(address=ADDRESS, name="sense", description="Living room"),
            DeviceDescriptor(address="f4d55889b1d6", name="office", adjustment=-1.0),
        ]
    )


def test_scenario_current_and_history(registry: DeviceRegistry) -> None:
    store = InMemoryMeasurementStore()
    ingestor = IngestionService(registry, store)
    ingestor.ingest(ADDRESS, 22.0, _at(1))
    ingestor.ingest(ADDRESS, 23.5, _at(2))

    view = QueryResolver(registry, store).resolve(ADDRESS, 2)

    assert view.name == "sense"
    assert view.current_measurement is not None
    assert view.current_measurement.temp_c == 23.5
    assert [(m.date, m.temp_c) for m in view.measurements] == [(_at(2), 23.5), (_at(1), 22.0)]
    assert view.current_measurement == view.measurements[0]
    assert view.errors == []


def test_unknown_device_is_not_found(registry: DeviceRegistry) -> None:
    resolver = QueryResolver(registry, InMemoryMeasurementStore())

    with pytest.raises(DeviceNotFoundError):
        resolver.resolve("doesnotexist", 1)


def test_never_reported_device_has_no_current_and_empty_history(registry: DeviceRegistry) -> None:
    view = QueryResolver(registry, InMemoryMeasurementStore()).resolve(ADDRESS, 5)

    assert view.address == ADDRESS
    assert view.current_measurement is None
    assert view.measurements == []
    assert view.errors == []


def test_without_lookback_only_latest_is_read(registry: DeviceRegistry) -> None:
    store = CountingStore()
    store.append(Measurement(ADDRESS, _at(1), 20.0))

    view = QueryResolver(registry, store).resolve(ADDRESS)

    assert store.calls == ["latest"]
    assert view.current_measurement is not None
    assert view.current_measurement.temp_raw_c == 20.0
    assert view.measurements == []


def test_history_and_current_come_from_one_read(registry: DeviceRegistry) -> None:
    store = CountingStore()
    store.append(Measurement(ADDRESS, _at(1), 20.0))

    QueryResolver(registry, store).resolve(ADDRESS, 3)

    assert store.calls == ["recent"]


@pytest.mark.parametrize("count", [0, -3])
def test_non_positive_lookback_is_invalid(registry: DeviceRegistry, count: int) -> None:
    store = CountingStore()

    with pytest.raises(StoreInvalidError):
        QueryResolver(registry, store).resolve(ADDRESS, count)
    assert store.calls == []


def test_lookback_is_clamped_to_maximum(registry: DeviceRegistry) -> None:
    store = InMemoryMeasurementStore()
    for seconds in range(10):
        store.append(Measurement(ADDRESS, _at(seconds), float(seconds)))

    view = QueryResolver(registry, store, max_count=4).resolve(ADDRESS, 1000)

    assert len(view.measurements) == 4


def test_temperatures_use_device_calibration(registry: DeviceRegistry) -> None:
    store = InMemoryMeasurementStore()
    store.append(Measurement("f4d55889b1d6", _at(1), 21.0))

    view = QueryResolver(registry, store).resolve("f4d55889b1d6", 1)

    measurement = view.measurements[0]
    assert measurement.temp_raw_c == 21.0
    assert measurement.temp_c == 20.0
    assert measurement.temp_f == to_fahrenheit(20.0)


def test_store_outage_yields_annotated_degraded_view(registry: DeviceRegistry) -> None:
    view = QueryResolver(registry, UnavailableStore()).resolve(ADDRESS, 5)

    assert view.name == "sense"
    assert view.current_measurement is None
    assert view.measurements == []
    assert {error.field for error in view.errors} == {"currentMeasurement", "measurements"}
    assert all("connection refused" in error.reason for error in view.errors)


def test_serialized_view_uses_camel_case(registry: DeviceRegistry) -> None:
    store = InMemoryMeasurementStore()
    store.append(Measurement(ADDRESS, _at(1), 22.0))

    payload = QueryResolver(registry, store).resolve(ADDRESS, 1).model_dump(by_alias=True)

    assert set(payload) == {
        "address",
        "name",
        "description",
        "currentMeasurement",
        "measurements",
        "errors",
    }
    assert set(payload["measurements"][0]) == {"date", "tempF", "tempC", "tempRawC"}
