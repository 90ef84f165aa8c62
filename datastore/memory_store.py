from __future__ import annotations

import bisect
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import Dict, List, Optional

from datastore.base import StoreError, validate_count
from models.records import Measurement

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class _Entry:
    date: datetime
    seq: int
    measurement: Measurement

    @property
    def sort_key(self) -> tuple[datetime, int]:
        return (self.date, self.seq)


class InMemoryMeasurementStore:
    """Process-local measurement store with optional JSON-lines persistence.

    Entries for each address are kept sorted ascending by ``(date, seq)`` where
    ``seq`` is the arrival order, so reads slice from the tail.

    Each address has its own lock. Disk writes happen under a separate file
    lock, so a slow append never holds up reads.
    """

    def __init__(self, persistence_path: Optional[Path] = None) -> None:
        self._entries: Dict[str, List[_Entry]] = {}
        self._address_locks: Dict[str, Lock] = {}
        self._next_seq = 0
        self.persistence_path = persistence_path
        self._registry_lock = Lock()
        self._file_lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def append(self, measurement: Measurement) -> None:
        with self._registry_lock:
            seq = self._next_seq
            self._next_seq = seq + 1
        self._persist(measurement, seq)
        self._insert(measurement, seq)

    def latest(self, address: str) -> Optional[Measurement]:
        with self._lock_for(address):
            entries = self._entries.get(address)
            if not entries:
                return None
            return entries[-1].measurement

    def recent(self, address: str, count: int) -> list[Measurement]:
        validate_count(count)
        with self._lock_for(address):
            entries = self._entries.get(address, [])
            return [entry.measurement for entry in reversed(entries[-count:])]

    def close(self) -> None:
        """Nothing to release; present to satisfy the store contract."""

    def _lock_for(self, address: str) -> Lock:
        with self._registry_lock:
            lock = self._address_locks.get(address)
            if lock is None:
                lock = self._address_locks[address] = Lock()
            return lock

    def _insert(self, measurement: Measurement, seq: int) -> None:
        entry = _Entry(date=measurement.date, seq=seq, measurement=measurement)
        with self._lock_for(measurement.device_address):
            entries = self._entries.setdefault(measurement.device_address, [])
            bisect.insort(entries, entry, key=lambda item: item.sort_key)

    def _persist(self, measurement: Measurement, seq: int) -> None:
        if not self.persistence_path:
            return
        line = json.dumps(
            {
                "address": measurement.device_address,
                "date": measurement.date.isoformat(),
                "temp_raw": measurement.temp_raw,
                "seq": seq,
            },
            sort_keys=True,
        )
        try:
            with self._file_lock, self.persistence_path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")
        except OSError as exc:
            raise StoreError(f"Failed to persist measurement: {exc}") from exc

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        skipped = 0
        with self.persistence_path.open("r", encoding="utf-8") as handle:
            for line in handle:
                if not line.strip():
                    continue
                try:
                    payload = json.loads(line)
                    measurement = Measurement(
                        device_address=payload["address"],
                        date=datetime.fromisoformat(payload["date"]),
                        temp_raw=float(payload["temp_raw"]),
                    )
                    seq = int(payload["seq"])
                except (json.JSONDecodeError, KeyError, TypeError, ValueError):
                    skipped += 1
                    continue
                self._insert(measurement, seq)
                with self._registry_lock:
                    self._next_seq = max(self._next_seq, seq + 1)

        if skipped:
            logger.warning(
                "Skipped unreadable lines while loading persisted measurements.",
                extra={"count": skipped, "backend": "memory"},
            )
