"""Registry of known devices, built once at startup."""

from __future__ import annotations

import logging
import tomllib
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping, Optional

from models.records import Device, DeviceDescriptor
from services.conversion import OffsetCalibration
from settings import get_settings

logger = logging.getLogger(__name__)


class DeviceNotFoundError(KeyError):
    """Raised when an address is not present in the registry."""

    def __init__(self, address: str) -> None:
        super().__init__(address)
        self.address = address

    def __str__(self) -> str:
        return f"Device with address {self.address!r} is not registered."


class DuplicateDeviceError(ValueError):
    """Raised at startup when configuration lists an address twice."""


class SensorConfigError(ValueError):
    """Raised when the sensors configuration file cannot be used."""


class DeviceRegistry:
    """Read-only mapping from device address to device metadata.

    The mapping is frozen after construction, so concurrent lookups need no
    locking.
    """

    def __init__(self, descriptors: Iterable[DeviceDescriptor] = ()) -> None:
        devices: dict[str, Device] = {}
        for descriptor in descriptors:
            if descriptor.address in devices:
                raise DuplicateDeviceError(
                    f"Device address {descriptor.address!r} is configured more than once."
                )
            devices[descriptor.address] = Device(
                address=descriptor.address,
                name=descriptor.name,
                description=descriptor.description,
                calibration=OffsetCalibration(offset=descriptor.adjustment),
            )
        self._devices: Mapping[str, Device] = MappingProxyType(devices)

    def lookup(self, address: str) -> Device:
        device = self._devices.get(address)
        if device is None:
            raise DeviceNotFoundError(address)
        return device

    def __contains__(self, address: object) -> bool:
        return address in self._devices

    def __iter__(self) -> Iterator[Device]:
        return iter(self._devices.values())

    def __len__(self) -> int:
        return len(self._devices)


def _optional_str(entry: dict, key: str, position: int) -> Optional[str]:
    value = entry.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise SensorConfigError(f"Sensor #{position} has a non-string {key!r}.")
    return value


def load_sensor_config(path: Path) -> list[DeviceDescriptor]:
    """Parse a ``sensors.toml`` file into device descriptors, in file order."""

    try:
        with path.open("rb") as handle:
            data = tomllib.load(handle)
    except OSError as exc:
        raise SensorConfigError(f"Could not read sensor configuration {path}: {exc}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise SensorConfigError(f"Failed to parse sensor configuration {path}: {exc}") from exc

    sensors = data.get("sensors", [])
    if not isinstance(sensors, list):
        raise SensorConfigError("Expected 'sensors' to be an array of tables.")

    descriptors: list[DeviceDescriptor] = []
    for position, entry in enumerate(sensors, start=1):
        if not isinstance(entry, dict):
            raise SensorConfigError(f"Sensor #{position} is not a table.")
        address = entry.get("address")
        if not isinstance(address, str) or not address.strip():
            raise SensorConfigError(f"Sensor #{position} is missing an address.")
        adjustment = entry.get("adjustment", 0.0)
        if isinstance(adjustment, bool) or not isinstance(adjustment, (int, float)):
            raise SensorConfigError(f"Sensor #{position} has a non-numeric adjustment.")
        descriptors.append(
            DeviceDescriptor(
                address=address.strip(),
                name=_optional_str(entry, "name", position),
                description=_optional_str(entry, "description", position),
                adjustment=float(adjustment),
            )
        )
    return descriptors


@lru_cache
def build_default_registry(path: Optional[str] = None) -> DeviceRegistry:
    settings = get_settings()
    config_path = settings.sensors_config_path if path is None else path
    if not config_path:
        logger.warning("No sensor configuration provided; registry is empty.")
        return DeviceRegistry()
    registry = DeviceRegistry(load_sensor_config(Path(config_path)))
    logger.info("Loaded sensor configuration.", extra={"device_count": len(registry)})
    return registry
