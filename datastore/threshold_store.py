from __future__ import annotations
import json
import logging
from dataclasses import replace
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, List, Optional, Tuple, Union

from pydantic import TypeAdapter

from models.records import SensorType, Severity, Threshold
from services.units import parse_sensor_type
from settings import get_settings

logger = logging.getLogger(__name__)

_THRESHOLDS_ADAPTER = TypeAdapter(List[Threshold])
_THRESHOLD_ADAPTER = TypeAdapter(Threshold)

_ThresholdKey = Tuple[SensorType, Severity]


class ThresholdStore:
    """Threshold configuration keyed by sensor type and severity."""

    def __init__(self, persistence_path: Optional[Path] = None) -> None:
        self._items: Dict[_ThresholdKey, Threshold] = {}
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def put(self, threshold: Threshold) -> Threshold:
        """Create or replace the threshold for its sensor type and severity."""

        with self._lock:
            self._items[self._key(threshold.sensor_type, threshold.severity)] = threshold
            self._persist()
        return threshold

    def get(self, sensor_type: Union[SensorType, str], severity: Severity) -> Threshold:
        key = self._key(sensor_type, severity)
        with self._lock:
            threshold = self._items.get(key)
        if threshold is None:
            raise KeyError(
                f"Threshold for {key[0].value} with severity {key[1].value} not found."
            )
        return threshold

    def list_all(self) -> List[Threshold]:
        with self._lock:
            items = list(self._items.values())
        return sorted(items, key=lambda item: (item.sensor_type.value, item.severity.rank))

    def active_thresholds_for(self, sensor_type: Union[SensorType, str]) -> List[Threshold]:
        resolved = parse_sensor_type(sensor_type)
        return [
            threshold
            for threshold in self.list_all()
            if threshold.sensor_type is resolved and threshold.is_active
        ]

    def set_active(
        self, sensor_type: Union[SensorType, str], severity: Severity, active: bool
    ) -> Threshold:
        key = self._key(sensor_type, severity)
        with self._lock:
            current = self._items.get(key)
            if current is None:
                raise KeyError(
                    f"Threshold for {key[0].value} with severity {key[1].value} not found."
                )
            updated = replace(current, is_active=active)
            self._items[key] = updated
            self._persist()
        return updated

    def delete(self, sensor_type: Union[SensorType, str], severity: Severity) -> None:
        key = self._key(sensor_type, severity)
        with self._lock:
            if self._items.pop(key, None) is None:
                raise KeyError(
                    f"Threshold for {key[0].value} with severity {key[1].value} not found."
                )
            self._persist()

    @staticmethod
    def _key(sensor_type: Union[SensorType, str], severity: Severity) -> _ThresholdKey:
        return parse_sensor_type(sensor_type), Severity(severity)

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = _THRESHOLDS_ADAPTER.dump_python(list(self._items.values()), mode="json")
        self.persistence_path.write_text(
            json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8"
        )

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            entries = json.loads(self.persistence_path.read_text(encoding="utf-8") or "[]")
        except (OSError, json.JSONDecodeError):
            entries = []
        if not isinstance(entries, list):
            entries = []

        for entry in entries:
            try:
                threshold = _THRESHOLD_ADAPTER.validate_python(entry)
            except ValueError as exc:
                logger.warning(
                    "Ignoring unreadable threshold record",
                    extra={"reason": str(exc).splitlines()[0]},
                )
                continue
            self._items[self._key(threshold.sensor_type, threshold.severity)] = threshold


@lru_cache
def build_default_threshold_store(path: Optional[str] = None) -> ThresholdStore:
    settings = get_settings()
    store_path = settings.thresholds_persistence_path if path is None else path
    persistence = Path(store_path) if store_path else None
    return ThresholdStore(persistence_path=persistence)
