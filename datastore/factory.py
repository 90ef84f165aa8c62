from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional

from datastore.base import MeasurementStore, StoreError
from datastore.elasticsearch_store import ElasticsearchMeasurementStore
from datastore.memory_store import InMemoryMeasurementStore
from settings import get_settings

logger = logging.getLogger(__name__)


@lru_cache
def build_default_store(backend: Optional[str] = None) -> MeasurementStore:
    settings = get_settings()
    selected = settings.store_backend if backend is None else backend

    if selected == "elasticsearch":
        store = ElasticsearchMeasurementStore(
            base_url=settings.elasticsearch_url,
            index_prefix=settings.elasticsearch_index_prefix,
            timeout=settings.elasticsearch_timeout,
        )
        try:
            store.ensure_index_template()
        except StoreError as exc:
            # Elasticsearch is often still booting when the service starts.
            logger.warning(
                "Could not install index template; retrying on the next write.",
                extra={"backend": selected, "reason": str(exc)},
            )
        return store

    if selected == "memory":
        path = Path(settings.memory_store_path) if settings.memory_store_path else None
        return InMemoryMeasurementStore(persistence_path=path)

    raise ValueError(f"Unknown measurement store backend {selected!r}.")
