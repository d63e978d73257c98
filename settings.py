from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_LOG_PATH_ENV = "OBSERVATION_LOG_PATH"
_PROJECTION_BACKEND_ENV = "PROJECTION_BACKEND"
_PROJECTION_PATH_ENV = "PROJECTION_PERSISTENCE_PATH"
_REDIS_URL_ENV = "REDIS_URL"
_KEY_PREFIX_ENV = "PROJECTION_KEY_PREFIX"
_CONCURRENCY_ENV = "EVENT_BUS_CONCURRENCY"
_MAX_RETRIES_ENV = "EVENT_BUS_MAX_RETRIES"
_RETRY_DELAY_ENV = "EVENT_BUS_RETRY_DELAY"
_LOG_LEVEL_ENV = "LOG_LEVEL"

_BACKENDS = ("memory", "redis")


@dataclass(frozen=True)
class Settings:
    observation_log_path: Optional[str]
    projection_backend: str
    projection_persistence_path: Optional[str]
    redis_url: str
    projection_key_prefix: str
    bus_concurrency: int
    bus_max_retries: int
    bus_retry_delay: float
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


def _read_int_env(name: str, default: int, minimum: int = 1) -> int:
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
    return parsed if parsed >= minimum else default


def _read_float_env(name: str, default: float) -> float:
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
    return parsed if parsed >= 0 else default


def _read_backend(default: str) -> str:
    candidate = _read_str_env(_PROJECTION_BACKEND_ENV, default).lower()
    return candidate if candidate in _BACKENDS else default


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
    return Settings(
        observation_log_path=_read_optional_env(_LOG_PATH_ENV, "./tmp/observations.jsonl"),
        projection_backend=_read_backend("memory"),
        projection_persistence_path=_read_optional_env(_PROJECTION_PATH_ENV, None),
        redis_url=_read_str_env(_REDIS_URL_ENV, "redis://localhost:6379/0"),
        projection_key_prefix=_read_str_env(_KEY_PREFIX_ENV, "device:projection:"),
        bus_concurrency=_read_int_env(_CONCURRENCY_ENV, 3),
        bus_max_retries=_read_int_env(_MAX_RETRIES_ENV, 3, minimum=0),
        bus_retry_delay=_read_float_env(_RETRY_DELAY_ENV, 1.0),
        log_level=_read_log_level("INFO"),
    )
