"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from services.conversion import IDENTITY, Calibration


@dataclass(frozen=True, slots=True)
class DeviceDescriptor:
    """One ``[[sensors]]`` entry as read from configuration."""

    address: str
    name: Optional[str] = None
    description: Optional[str] = None
    adjustment: float = 0.0


@dataclass(frozen=True, slots=True)
class Device:
    """A known sensor, identified by its hardware address."""

    address: str
    name: Optional[str] = None
    description: Optional[str] = None
    calibration: Calibration = field(default=IDENTITY)


@dataclass(frozen=True, slots=True)
class Measurement:
    """A single stored observation. Only the raw value is ground truth."""

    device_address: str
    date: datetime
    temp_raw: float
