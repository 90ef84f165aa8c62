"""Write path shared by every measurement producer."""

from __future__ import annotations

import logging
import math
import time
from datetime import datetime, timezone
from functools import lru_cache
from typing import Optional

from datastore.base import MeasurementStore, StoreError, StoreInvalidError
from datastore.factory import build_default_store
from models.records import Device, Measurement
from services.registry import DeviceNotFoundError, DeviceRegistry, build_default_registry

logger = logging.getLogger(__name__)


class IngestionService:
    """Validates and forwards measurement writes to the store.

    This is a synchronous pass-through: nothing is queued or retried here, so a
    failed write surfaces to the producer, which owns retry and backoff.
    """

    def __init__(self, registry: DeviceRegistry, store: MeasurementStore) -> None:
        self.registry = registry
        self.store = store

    def ingest(
        self,
        address: str,
        raw_value: float,
        date: Optional[datetime] = None,
    ) -> tuple[Device, Measurement]:
        try:
            device = self.registry.lookup(address)
        except DeviceNotFoundError:
            logger.warning(
                "Rejected measurement for unknown device.",
                extra={"address": address, "reason": "unknown device"},
            )
            raise

        raw = self._validate_raw(raw_value)
        measurement = Measurement(
            device_address=device.address,
            date=self._normalize_date(date),
            temp_raw=raw,
        )

        start_time = time.perf_counter()
        try:
            self.store.append(measurement)
        except StoreError as exc:
            logger.error(
                "Failed to store measurement.",
                extra={
                    "address": address,
                    "date": measurement.date.isoformat(),
                    "reason": str(exc),
                },
            )
            raise

        logger.info(
            "Stored measurement.",
            extra={
                "address": address,
                "date": measurement.date.isoformat(),
                "temp_raw": raw,
                "elapsed_ms": int((time.perf_counter() - start_time) * 1000),
            },
        )
        return device, measurement

    @staticmethod
    def _validate_raw(raw_value: float) -> float:
        if isinstance(raw_value, bool):
            raise StoreInvalidError("Raw value must be a number.")
        try:
            raw = float(raw_value)
        except (TypeError, ValueError) as exc:
            raise StoreInvalidError(f"Raw value {raw_value!r} is not a number.") from exc
        if not math.isfinite(raw):
            raise StoreInvalidError(f"Raw value {raw_value!r} is not finite.")
        return raw

    @staticmethod
    def _normalize_date(date: Optional[datetime]) -> datetime:
        if date is None:
            return datetime.now(timezone.utc)
        if date.tzinfo is None:
            date = date.replace(tzinfo=timezone.utc)
        return date.astimezone(timezone.utc)


@lru_cache
def build_default_ingestor() -> IngestionService:
    return IngestionService(registry=build_default_registry(), store=build_default_store())
