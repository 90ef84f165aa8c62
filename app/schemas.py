"""Pydantic schemas for the HTTP API layer.

Field names are serialized in camelCase (``tempC``, ``currentMeasurement``) to
match the field names dashboards already query (``tempF``, ``tempRawC``).
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from models.records import Device, Measurement
from services.conversion import Calibration, convert


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MeasurementView(ApiModel):
    """A measurement with temperatures derived from its raw reading."""

    date: datetime
    temp_f: float = Field(..., description="Calibrated temperature in degrees Fahrenheit.")
    temp_c: float = Field(..., description="Calibrated temperature in degrees Celsius.")
    temp_raw_c: float = Field(..., description="Raw, uncalibrated sensor reading.")

    @classmethod
    def from_measurement(
        cls, measurement: Measurement, calibration: Calibration, **fields: Any
    ) -> "MeasurementView":
        temp_c, temp_f = convert(measurement.temp_raw, calibration)
        return cls(
            date=measurement.date,
            temp_f=temp_f,
            temp_c=temp_c,
            temp_raw_c=measurement.temp_raw,
            **fields,
        )


class IngestedMeasurement(MeasurementView):
    """Response returned after a measurement has been stored."""

    address: str


class DeviceSummary(ApiModel):
    address: str
    name: Optional[str] = None
    description: Optional[str] = None

    @classmethod
    def from_device(cls, device: Device) -> "DeviceSummary":
        return cls(address=device.address, name=device.name, description=device.description)


class ViewError(ApiModel):
    """Annotation explaining which part of a device view could not be read."""

    field: str
    reason: str


class DeviceView(DeviceSummary):
    """A device with its current measurement and recent history.

    ``current_measurement`` is ``None`` both for a device that has never
    reported and for a failed read; the two are told apart by ``errors``.
    """

    current_measurement: Optional[MeasurementView] = None
    measurements: List[MeasurementView] = Field(default_factory=list)
    errors: List[ViewError] = Field(default_factory=list)


class MeasurementWrite(ApiModel):
    """Payload submitted by producers to record one reading."""

    address: str = Field(..., min_length=1)
    raw_value: float = Field(..., alias="tempRawC", description="Raw sensor reading.")
    date: Optional[datetime] = Field(
        default=None, description="Time of observation; defaults to now."
    )

    @field_validator("raw_value")
    @classmethod
    def _finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("raw_value must be a finite number")
        return value
