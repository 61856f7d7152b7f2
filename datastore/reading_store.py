from __future__ import annotations
import logging
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, List, Optional

from pydantic import TypeAdapter, ValidationError

from models.records import ReadingFilter, ScoredReading
from settings import get_settings

logger = logging.getLogger(__name__)

_READING_ADAPTER = TypeAdapter(ScoredReading)


class ReadingStore:
    """Append-only reading history, optionally persisted as JSON Lines.

    Each saved reading is appended to the file as one line, so writes cost the
    same regardless of how much history is already stored.
    """

    def __init__(self, persistence_path: Optional[Path] = None) -> None:
        self._readings: List[ScoredReading] = []
        self._by_sensor: Dict[str, List[ScoredReading]] = {}
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def save(self, reading: ScoredReading) -> None:
        with self._lock:
            self._persist(reading)
            self._append(reading)

    def fetch_recent_readings(self, sensor_id: str, n: int) -> List[ScoredReading]:
        """Return up to ``n`` readings of one sensor, oldest first, in submission order."""

        if n <= 0:
            return []
        with self._lock:
            history = self._by_sensor.get(sensor_id, [])
            return list(history[-n:])

    def fetch_readings_in_range(self, query: ReadingFilter) -> List[ScoredReading]:
        with self._lock:
            matches = [reading for reading in self._readings if query.matches(reading)]
        return sorted(matches, key=lambda reading: reading.timestamp)

    def latest_readings(
        self,
        sensor_id: Optional[str] = None,
        station_id: Optional[int] = None,
        limit: int = 10,
    ) -> List[ScoredReading]:
        """Latest readings of one sensor, or the latest reading of every sensor at a station."""

        if sensor_id is None and station_id is None:
            raise ValueError("Either sensor_id or station_id must be provided.")

        with self._lock:
            if sensor_id is not None:
                history = list(self._by_sensor.get(sensor_id, []))
                newest = sorted(history, key=lambda reading: reading.timestamp, reverse=True)
                return newest[:limit]

            latest: Dict[str, ScoredReading] = {}
            for reading in self._readings:
                if reading.station_id != station_id:
                    continue
                current = latest.get(reading.sensor_id)
                if current is None or reading.timestamp >= current.timestamp:
                    latest[reading.sensor_id] = reading
        return sorted(latest.values(), key=lambda reading: reading.sensor_id)

    def scan(self) -> List[ScoredReading]:
        with self._lock:
            return list(self._readings)

    def _append(self, reading: ScoredReading) -> None:
        self._readings.append(reading)
        self._by_sensor.setdefault(reading.sensor_id, []).append(reading)

    def _persist(self, reading: ScoredReading) -> None:
        if not self.persistence_path:
            return
        line = _READING_ADAPTER.dump_json(reading).decode("utf-8")
        with self.persistence_path.open("a", encoding="utf-8") as handle:
            handle.write(line + "\n")

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            lines = self.persistence_path.read_text(encoding="utf-8").splitlines()
        except OSError:
            lines = []

        for line_number, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                reading = _READING_ADAPTER.validate_json(line)
            except ValidationError:
                logger.warning(
                    "Ignoring unreadable reading record",
                    extra={"row_number": line_number, "reason": "invalid payload"},
                )
                continue
            self._append(reading)


@lru_cache
def build_default_reading_store(path: Optional[str] = None) -> ReadingStore:
    settings = get_settings()
    store_path = settings.readings_persistence_path if path is None else path
    persistence = Path(store_path) if store_path else None
    return ReadingStore(persistence_path=persistence)
