"""Read path: composes registry, store and conversion into device views."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from app.schemas import DeviceView, MeasurementView, ViewError
from datastore.base import MeasurementStore, StoreUnavailableError, validate_count
from datastore.factory import build_default_store
from services.registry import DeviceRegistry, build_default_registry
from settings import get_settings

logger = logging.getLogger(__name__)


class QueryResolver:
    """Answers ``device(address)`` queries.

    When history is requested the current measurement is the head of that
    history, taken from the same read, so the two always agree.
    """

    def __init__(
        self,
        registry: DeviceRegistry,
        store: MeasurementStore,
        max_count: int = 100,
    ) -> None:
        self.registry = registry
        self.store = store
        self.max_count = max_count

    def resolve(self, address: str, lookback_count: Optional[int] = None) -> DeviceView:
        device = self.registry.lookup(address)
        if lookback_count is not None:
            validate_count(lookback_count)
            lookback_count = min(lookback_count, self.max_count)

        view = DeviceView(
            address=device.address,
            name=device.name,
            description=device.description,
        )
        try:
            if lookback_count is None:
                latest = self.store.latest(address)
                history = [latest] if latest is not None else []
            else:
                history = list(self.store.recent(address, lookback_count))
        except StoreUnavailableError as exc:
            logger.warning(
                "Serving degraded device view.",
                extra={"address": address, "count": lookback_count, "reason": str(exc)},
            )
            fields = ["currentMeasurement"]
            if lookback_count is not None:
                fields.append("measurements")
            view.errors.extend(ViewError(field=field, reason=str(exc)) for field in fields)
            return view

        views = [
            MeasurementView.from_measurement(measurement, device.calibration)
            for measurement in history
        ]
        view.current_measurement = views[0] if views else None
        if lookback_count is not None:
            view.measurements = views
        return view


@lru_cache
def build_default_resolver() -> QueryResolver:
    return QueryResolver(
        registry=build_default_registry(),
        store=build_default_store(),
        max_count=get_settings().max_count,
    )
