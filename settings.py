from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_READINGS_PATH_ENV = "READINGS_PERSISTENCE_PATH"
_THRESHOLDS_PATH_ENV = "THRESHOLDS_PERSISTENCE_PATH"
_IMPORTS_PATH_ENV = "IMPORT_JOBS_PERSISTENCE_PATH"
_RECENT_WINDOW_ENV = "RECENT_WINDOW_SIZE"
_WARM_UP_ENV = "WARM_UP_SECONDS"
_WORKER_COUNT_ENV = "IMPORT_WORKER_COUNT"
_LOG_LEVEL_ENV = "LOG_LEVEL"


@dataclass(frozen=True)
class Settings:
    readings_persistence_path: Optional[str]
    thresholds_persistence_path: Optional[str]
    imports_persistence_path: Optional[str]
    recent_window_size: int
    warm_up_seconds: float
    import_workers: int
    log_level: str


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


def _read_non_negative_float(name: str, default: float) -> float:
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
        readings_persistence_path=_read_optional_env(_READINGS_PATH_ENV, "./tmp/readings.jsonl"),
        thresholds_persistence_path=_read_optional_env(
            _THRESHOLDS_PATH_ENV, "./tmp/thresholds.json"
        ),
        imports_persistence_path=_read_optional_env(_IMPORTS_PATH_ENV, "./tmp/imports.json"),
        recent_window_size=_read_positive_int(_RECENT_WINDOW_ENV, 5),
        warm_up_seconds=_read_non_negative_float(_WARM_UP_ENV, 5.0),
        import_workers=_read_positive_int(_WORKER_COUNT_ENV, 4),
        log_level=_read_log_level("INFO"),
    )
