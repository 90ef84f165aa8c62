"""Backend contract for measurement storage.

A backend only has to offer three access patterns: insert one measurement,
read the most recent measurement for an address, and read the most recent
``count`` measurements for an address in descending order.

Ordering is by ``date`` descending. Measurements sharing a timestamp are
ordered by arrival, so the later write sorts first and wins ``latest``.
"""

from __future__ import annotations

from typing import Optional, Protocol, Sequence

from models.records import Measurement


class StoreError(Exception):
    """Base class for storage failures."""


class StoreUnavailableError(StoreError):
    """The backend could not be reached or timed out. Safe to retry."""


class StoreInvalidError(StoreError):
    """The request was malformed and was not sent. Retrying will not help."""


class MeasurementStore(Protocol):
    def append(self, measurement: Measurement) -> None: ...

    def latest(self, address: str) -> Optional[Measurement]: ...

    def recent(self, address: str, count: int) -> Sequence[Measurement]: ...

    def close(self) -> None: ...


def validate_count(count: int) -> int:
    if isinstance(count, bool) or not isinstance(count, int):
        raise StoreInvalidError(f"Measurement count must be an integer, got {count!r}.")
    if count <= 0:
        raise StoreInvalidError(f"Measurement count must be positive, got {count}.")
    return count
