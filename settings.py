from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_STORE_BACKEND_ENV = "TELEMETRY_STORE_BACKEND"
_ES_URL_ENV = "ELASTICSEARCH_URL"
_ES_INDEX_PREFIX_ENV = "ELASTICSEARCH_INDEX_PREFIX"
_ES_TIMEOUT_ENV = "ELASTICSEARCH_TIMEOUT"
_MEMORY_PATH_ENV = "MEMORY_STORE_PATH"
_SENSORS_PATH_ENV = "SENSORS_CONFIG_PATH"
_DEFAULT_COUNT_ENV = "MEASUREMENTS_DEFAULT_COUNT"
_MAX_COUNT_ENV = "MEASUREMENTS_MAX_COUNT"
_LOG_LEVEL_ENV = "LOG_LEVEL"

STORE_BACKENDS = ("memory", "elasticsearch")


@dataclass(frozen=True)
class Settings:
    store_backend: str
    elasticsearch_url: str
    elasticsearch_index_prefix: str
    elasticsearch_timeout: float
    memory_store_path: Optional[str]
    sensors_config_path: Optional[str]
    default_count: int
    max_count: int
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_store_backend(default: str) -> str:
    candidate = _read_str_env(_STORE_BACKEND_ENV, default).lower()
    return candidate if candidate in STORE_BACKENDS else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    max_count = _read_positive_int(_MAX_COUNT_ENV, 100)
    return Settings(
        store_backend=_read_store_backend("memory"),
        elasticsearch_url=_read_str_env(_ES_URL_ENV, "http://127.0.0.1:9200"),
        elasticsearch_index_prefix=_read_str_env(_ES_INDEX_PREFIX_ENV, "measurements"),
        elasticsearch_timeout=_read_positive_float(_ES_TIMEOUT_ENV, 5.0),
        memory_store_path=_read_optional_env(_MEMORY_PATH_ENV, None),
        sensors_config_path=_read_optional_env(_SENSORS_PATH_ENV, None),
        default_count=min(_read_positive_int(_DEFAULT_COUNT_ENV, 10), max_count),
        max_count=max_count,
        log_level=_read_log_level("INFO"),
    )
