"""Measurement storage backed by Elasticsearch's REST API.

Documents go into one index per UTC day (``{prefix}-YYYYMMDD``) so whole days
can be dropped by index deletion. Each document carries an arrival stamp,
``seq``, that breaks ties between measurements sharing a timestamp.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from datastore.base import (
    StoreError,
    StoreInvalidError,
    StoreUnavailableError,
    validate_count,
)
from models.records import Measurement

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = {429, 502, 503, 504}


class _ArrivalClock:
    """Strictly increasing nanosecond stamps, shared by all writer threads."""

    def __init__(self) -> None:
        self._last = 0
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            stamp = max(time.time_ns(), self._last + 1)
            self._last = stamp
            return stamp


class ElasticsearchMeasurementStore:
    def __init__(
        self,
        base_url: str,
        index_prefix: str = "measurements",
        timeout: float = 5.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.index_prefix = index_prefix
        self._client = client or httpx.Client(base_url=self.base_url, timeout=timeout)
        self._clock = _ArrivalClock()
        self._template_installed = False

    def index_for(self, date: datetime) -> str:
        return f"{self.index_prefix}-{date.astimezone(timezone.utc):%Y%m%d}"

    def ensure_index_template(self) -> None:
        """Install mappings for the daily indices so ``address`` is matched exactly."""
        template = {
            "index_patterns": [f"{self.index_prefix}-*"],
            "template": {
                "mappings": {
                    "properties": {
                        "address": {"type": "keyword"},
                        "date": {"type": "date"},
                        "temp_raw": {"type": "double"},
                        "seq": {"type": "long"},
                    }
                }
            },
        }
        self._request("PUT", f"/_index_template/{self.index_prefix}", json=template)
        self._template_installed = True
        logger.info(
            "Elasticsearch index template installed.",
            extra={"backend": "elasticsearch", "index": f"{self.index_prefix}-*"},
        )

    def append(self, measurement: Measurement) -> None:
        if not self._template_installed:
            self._retry_index_template()
        index = self.index_for(measurement.date)
        document = {
            "address": measurement.device_address,
            "date": measurement.date.astimezone(timezone.utc).isoformat(),
            "temp_raw": measurement.temp_raw,
            "seq": self._clock.next(),
        }
        self._request(
            "POST",
            f"/{index}/_doc",
            params={"refresh": "wait_for"},
            json=document,
        )

    def latest(self, address: str) -> Optional[Measurement]:
        measurements = self.recent(address, 1)
        return measurements[0] if measurements else None

    def recent(self, address: str, count: int) -> list[Measurement]:
        validate_count(count)
        query = {
            "size": count,
            "sort": [{"date": {"order": "desc"}}, {"seq": {"order": "desc"}}],
            "query": {"bool": {"filter": {"term": {"address": address}}}},
        }
        response = self._request(
            "POST",
            f"/{self.index_prefix}-*/_search",
            params={"ignore_unavailable": "true", "allow_no_indices": "true"},
            json=query,
        )
        if response is None:
            return []
        return self._parse_hits(response)

    def close(self) -> None:
        self._client.close()

    def _retry_index_template(self) -> None:
        # The write below surfaces the outage if Elasticsearch is still down.
        try:
            self.ensure_index_template()
        except StoreError as exc:
            logger.warning(
                "Index template still missing; writing without it.",
                extra={"backend": "elasticsearch", "reason": str(exc)},
            )

    def _request(self, method: str, path: str, **kwargs: Any) -> Optional[httpx.Response]:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            logger.warning(
                "Elasticsearch request timed out.",
                extra={"backend": "elasticsearch", "reason": path},
            )
            raise StoreUnavailableError(f"Request to {path} timed out.") from exc
        except httpx.TransportError as exc:
            logger.warning(
                "Elasticsearch request failed.",
                extra={"backend": "elasticsearch", "reason": str(exc)},
            )
            raise StoreUnavailableError(f"Request to {path} failed: {exc}") from exc

        status = response.status_code
        if status == 404 and path.endswith("/_search"):
            return None
        if status >= 500 or status in _RETRYABLE_STATUS:
            logger.warning(
                "Elasticsearch is unavailable.",
                extra={"backend": "elasticsearch", "status": status},
            )
            raise StoreUnavailableError(f"Elasticsearch returned status {status} for {path}.")
        if status >= 400:
            raise StoreInvalidError(
                f"Elasticsearch rejected {path} with status {status}: {response.text.strip()}"
            )
        return response

    @staticmethod
    def _parse_hits(response: httpx.Response) -> list[Measurement]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise StoreError("Elasticsearch returned invalid JSON.") from exc

        # Search results are nested as {"hits": {"hits": [...]}}.
        try:
            hits = payload["hits"]["hits"]
        except (KeyError, TypeError) as exc:
            raise StoreError("Elasticsearch returned an unexpected response.") from exc

        measurements: list[Measurement] = []
        for hit in hits:
            try:
                source = hit["_source"]
                date = datetime.fromisoformat(source["date"].replace("Z", "+00:00"))
                measurements.append(
                    Measurement(
                        device_address=source["address"],
                        date=date if date.tzinfo else date.replace(tzinfo=timezone.utc),
                        temp_raw=float(source["temp_raw"]),
                    )
                )
            except (KeyError, TypeError, ValueError, AttributeError) as exc:
                raise StoreError("Elasticsearch returned a malformed measurement.") from exc
        return measurements
