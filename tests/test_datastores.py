"""Unit tests for the JSON-backed reading, threshold and import stores."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone

import pytest

from app.schemas import ImportResult, ImportStatus, RowError
from datastore.import_jobs import ImportJobStore
from datastore.reading_store import ReadingStore
from datastore.threshold_store import ThresholdStore
from models.records import (
    Provenance,
    ReadingFilter,
    ScoredReading,
    SensorType,
    Severity,
    Threshold,
)

_T0 = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def _reading(
    sensor_id: str = "sensor-1",
    minutes: int = 0,
    value: float = 21.5,
    station_id: int | None = 7,
    sensor_type: SensorType = SensorType.temperature,
) -> ScoredReading:
    return ScoredReading(
        sensor_id=sensor_id,
        sensor_type=sensor_type,
        value=value,
        timestamp=_T0 + timedelta(minutes=minutes),
        provenance=Provenance.real,
        quality_score=1.0,
        unit="°C",
        is_valid=True,
        station_id=station_id,
    )


def test_recent_readings_are_oldest_first_and_capped() -> None:
    store = ReadingStore()
    for minute in range(8):
        store.save(_reading(minutes=minute, value=float(minute)))
    store.save(_reading(sensor_id="other", minutes=99))

    recent = store.fetch_recent_readings("sensor-1", 3)

    assert [reading.value for reading in recent] == [5.0, 6.0, 7.0]
    assert store.fetch_recent_readings("sensor-1", 0) == []
    assert store.fetch_recent_readings("unknown", 5) == []


def test_range_query_is_inclusive_and_filtered() -> None:
    store = ReadingStore()
    store.save(_reading(minutes=30))
    store.save(_reading(minutes=0))
    store.save(_reading(minutes=60))
    store.save(_reading(sensor_id="sensor-2", minutes=10, sensor_type=SensorType.humidity))

    query = ReadingFilter(start_time=_T0, end_time=_T0 + timedelta(minutes=30), sensor_id="sensor-1")
    by_type = ReadingFilter(
        start_time=_T0, end_time=_T0 + timedelta(hours=1), sensor_type=SensorType.humidity
    )

    assert [reading.timestamp for reading in store.fetch_readings_in_range(query)] == [
        _T0,
        _T0 + timedelta(minutes=30),
    ]
    assert [reading.sensor_id for reading in store.fetch_readings_in_range(by_type)] == ["sensor-2"]


def test_reading_filter_rejects_inverted_window() -> None:
    with pytest.raises(ValueError, match="Start time must be before end time."):
        ReadingFilter(start_time=_T0, end_time=_T0)


def test_latest_readings_by_sensor_and_by_station() -> None:
    store = ReadingStore()
    store.save(_reading(sensor_id="b", minutes=0, value=1.0))
    store.save(_reading(sensor_id="b", minutes=5, value=2.0))
    store.save(_reading(sensor_id="a", minutes=3, value=3.0))
    store.save(_reading(sensor_id="c", minutes=4, value=4.0, station_id=8))

    assert [reading.value for reading in store.latest_readings(sensor_id="b", limit=1)] == [2.0]
    station = store.latest_readings(station_id=7)
    assert [(reading.sensor_id, reading.value) for reading in station] == [("a", 3.0), ("b", 2.0)]
    with pytest.raises(ValueError):
        store.latest_readings()


def test_reading_store_persists_and_reloads(tmp_path) -> None:
    path = tmp_path / "readings.jsonl"
    store = ReadingStore(persistence_path=path)
    store.save(_reading(value=-3.25))
    store.save(_reading(value=4.0, minutes=1))

    lines = path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    assert json.loads(lines[0])["unit"] == "°C"
    assert json.loads(lines[1])["value"] == 4.0

    reloaded = ReadingStore(persistence_path=path)
    assert reloaded.scan() == store.scan()
    assert reloaded.fetch_recent_readings("sensor-1", 5)[0].value == 4.0


def test_reading_store_appends_without_rewriting(tmp_path) -> None:
    path = tmp_path / "readings.jsonl"
    store = ReadingStore(persistence_path=path)
    store.save(_reading(value=1.0))
    first_line = path.read_text(encoding="utf-8")

    store.save(_reading(value=2.0, minutes=1))

    assert path.read_text(encoding="utf-8").startswith(first_line)


def test_reading_store_skips_corrupt_lines(tmp_path, caplog) -> None:
    path = tmp_path / "readings.jsonl"
    ReadingStore(persistence_path=path).save(_reading(value=7.5))
    with path.open("a", encoding="utf-8") as handle:
        handle.write("{not json\n\n")

    with caplog.at_level(logging.WARNING, logger="datastore.reading_store"):
        readings = ReadingStore(persistence_path=path).scan()

    assert [reading.value for reading in readings] == [7.5]
    assert any(record.getMessage() == "Ignoring unreadable reading record" for record in caplog.records)


def test_threshold_put_is_an_upsert_per_type_and_severity() -> None:
    store = ThresholdStore()
    store.put(Threshold(SensorType.temperature, Severity.high, max_value=35.0))
    store.put(Threshold(SensorType.temperature, Severity.high, max_value=37.0))
    store.put(Threshold(SensorType.temperature, Severity.low, min_value=0.0))
    store.put(Threshold(SensorType.co2, Severity.critical, max_value=5000.0))

    listed = store.list_all()

    assert [(item.sensor_type, item.severity) for item in listed] == [
        (SensorType.co2, Severity.critical),
        (SensorType.temperature, Severity.low),
        (SensorType.temperature, Severity.high),
    ]
    assert store.get("temperature", Severity.high).max_value == 37.0


def test_deactivated_thresholds_are_not_active() -> None:
    store = ThresholdStore()
    store.put(Threshold(SensorType.humidity, Severity.medium, max_value=90.0))

    store.set_active(SensorType.humidity, Severity.medium, False)

    assert store.active_thresholds_for("humidity") == []
    assert store.get(SensorType.humidity, Severity.medium).is_active is False


def test_missing_threshold_operations_raise_key_error() -> None:
    store = ThresholdStore()

    with pytest.raises(KeyError):
        store.get(SensorType.ph, Severity.low)
    with pytest.raises(KeyError):
        store.set_active(SensorType.ph, Severity.low, True)
    with pytest.raises(KeyError):
        store.delete(SensorType.ph, Severity.low)


def test_threshold_store_persists_and_reloads(tmp_path) -> None:
    path = tmp_path / "thresholds.json"
    store = ThresholdStore(persistence_path=path)
    store.put(Threshold(SensorType.noise, Severity.high, max_value=85.0, description="Loud."))
    store.put(Threshold(SensorType.ph, Severity.low, min_value=6.0, max_value=8.0))
    store.delete(SensorType.ph, Severity.low)

    reloaded = ThresholdStore(persistence_path=path)

    assert reloaded.list_all() == [
        Threshold(SensorType.noise, Severity.high, max_value=85.0, description="Loud.")
    ]


def test_threshold_store_keeps_good_records_next_to_bad_ones(tmp_path, caplog) -> None:
    path = tmp_path / "thresholds.json"
    path.write_text(
        json.dumps(
            [
                {"sensor_type": "humidity", "severity": "high", "max_value": 90.0},
                {"sensor_type": "humidity", "severity": "low", "min_value": 50.0, "max_value": 10.0},
                {"sensor_type": "radiation", "severity": "low", "max_value": 1.0},
            ]
        ),
        encoding="utf-8",
    )

    with caplog.at_level(logging.WARNING, logger="datastore.threshold_store"):
        store = ThresholdStore(persistence_path=path)

    assert store.list_all() == [Threshold(SensorType.humidity, Severity.high, max_value=90.0)]
    warnings = [
        record for record in caplog.records if record.getMessage() == "Ignoring unreadable threshold record"
    ]
    assert len(warnings) == 2


def _job(import_id: str, minutes: int = 0) -> ImportResult:
    return ImportResult(
        import_id=import_id,
        status=ImportStatus.partial,
        uploaded_at=_T0 + timedelta(minutes=minutes),
        accepted_count=3,
        errors=[RowError(row_number=4, reason="invalid timestamp")],
    )


def test_import_store_returns_copies() -> None:
    store = ImportJobStore()
    store.save(_job("job-1"))

    fetched = store.get("job-1")
    assert fetched is not None
    fetched.errors.clear()

    assert len(store.get("job-1").errors) == 1  # type: ignore[union-attr]
    assert store.get("missing") is None


def test_import_store_lists_newest_first_and_reloads(tmp_path) -> None:
    path = tmp_path / "imports.json"
    store = ImportJobStore(persistence_path=path)
    store.save(_job("old", minutes=0))
    store.save(_job("new", minutes=10))

    reloaded = ImportJobStore(persistence_path=path)

    assert [job.import_id for job in reloaded.recent()] == ["new", "old"]
    assert [job.import_id for job in reloaded.recent(limit=1)] == ["new"]


def test_import_store_skips_unreadable_records(tmp_path) -> None:
    path = tmp_path / "imports.json"
    good = _job("good").model_dump(mode="json")
    path.write_text(json.dumps({"imports": [good, {"import_id": "bad"}]}), encoding="utf-8")

    store = ImportJobStore(persistence_path=path)

    assert [job.import_id for job in store.recent()] == ["good"]
