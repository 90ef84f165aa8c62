"""Temperature unit conversion.

Every temperature the service reports is derived here from the stored raw
reading, so values computed at different times for the same measurement never
disagree.

Raw readings are turned into Celsius by a ``Calibration``. Calibrations are
pure and versioned: a stored reading can always be re-derived, and a change of
formula is visible as a new ``version`` instead of silently altering history.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


class Calibration(Protocol):
    """A pure raw-to-Celsius mapping for one sensor."""

    version: str

    def __call__(self, raw: float) -> float: ...


@dataclass(frozen=True, slots=True)
class OffsetCalibration:
    """Adds a fixed adjustment, in degrees Celsius, to the raw reading.

    This matches how the sensors are calibrated in the field: a miscalibrated
    sensor is corrected by a constant ``adjustment`` from ``sensors.toml``.
    """

    offset: float = 0.0
    version: str = "offset-v1"

    def __call__(self, raw: float) -> float:
        return raw + self.offset


IDENTITY = OffsetCalibration()


def to_celsius(raw: float, calibration: Calibration = IDENTITY) -> float:
    return calibration(float(raw))


def to_fahrenheit(celsius: float) -> float:
    return celsius * 9 / 5 + 32


def convert(raw: float, calibration: Calibration = IDENTITY) -> tuple[float, float]:
    """Return ``(celsius, fahrenheit)`` for a raw reading."""
    celsius = to_celsius(raw, calibration)
    return celsius, to_fahrenheit(celsius)
