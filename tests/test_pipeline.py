from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import List, Sequence

import pytest

from models.errors import InvalidReading, PipelineError, UnknownSensorType
from models.records import (
    IngestionState,
    Provenance,
    RawReading,
    ReadingFilter,
    ScoredReading,
    SensorType,
    Severity,
    Threshold,
    ViolationRecord,
)
from services.pipeline import IngestionPipeline

_NOW = datetime(2024, 3, 1, 8, 30, tzinfo=timezone.utc)


class FakeReadings:
    def __init__(self) -> None:
        self.saved: List[ScoredReading] = []
        self.fail_on: str | None = None
        self.requested: List[tuple[str, int]] = []

    def fetch_recent_readings(self, sensor_id: str, n: int) -> List[ScoredReading]:
        self.requested.append((sensor_id, n))
        if self.fail_on == "fetch":
            raise ConnectionError("history store offline")
        matching = [reading for reading in self.saved if reading.sensor_id == sensor_id]
        return matching[-n:]

    def fetch_readings_in_range(self, query: ReadingFilter) -> List[ScoredReading]:
        return [reading for reading in self.saved if query.matches(reading)]

    def save(self, reading: ScoredReading) -> None:
        if self.fail_on == "save":
            raise OSError("disk full")
        self.saved.append(reading)


class FakeThresholds:
    def __init__(self, thresholds: Sequence[Threshold] = (), fail: bool = False) -> None:
        self.thresholds = list(thresholds)
        self.fail = fail

    def active_thresholds_for(self, sensor_type: SensorType) -> List[Threshold]:
        if self.fail:
            raise TimeoutError("threshold store timed out")
        return [
            threshold
            for threshold in self.thresholds
            if threshold.sensor_type is sensor_type and threshold.is_active
        ]


class FakeAlerts:
    def __init__(self, fail: bool = False) -> None:
        self.batches: List[Sequence[ViolationRecord]] = []
        self.fail = fail

    def notify(self, violations: Sequence[ViolationRecord]) -> None:
        if self.fail:
            raise RuntimeError("pager unavailable")
        self.batches.append(violations)


def _raw(value, sensor_type=SensorType.temperature, **overrides) -> RawReading:
    fields = {
        "sensor_id": "sensor-1",
        "sensor_type": sensor_type,
        "value": value,
        "timestamp": _NOW,
        "provenance": Provenance.real,
    }
    fields.update(overrides)
    return RawReading(**fields)


def _pipeline(readings=None, thresholds=None, alerts=None) -> IngestionPipeline:
    return IngestionPipeline(
        readings=readings or FakeReadings(),
        thresholds=thresholds or FakeThresholds(),
        alerts=alerts or FakeAlerts(),
    )


def test_normal_reading_is_persisted_without_violations() -> None:
    readings = FakeReadings()
    alerts = FakeAlerts()

    result = _pipeline(readings=readings, alerts=alerts).ingest(_raw(22.0))

    assert result.state is IngestionState.persisted
    assert result.persisted is True
    assert result.violations == ()
    assert result.notified is False
    assert result.stored.quality_score == 1.0
    assert readings.saved == [result.stored]
    assert alerts.batches == []


def test_violations_are_persisted_and_forwarded() -> None:
    thresholds = FakeThresholds([Threshold(SensorType.temperature, Severity.high, max_value=35.0)])
    alerts = FakeAlerts()

    result = _pipeline(thresholds=thresholds, alerts=alerts).ingest(_raw(38.0))

    assert len(result.violations) == 1
    assert result.violations[0].severity is Severity.high
    assert result.notified is True
    assert alerts.batches == [result.violations]


def test_real_reading_outside_absolute_range_is_invalid() -> None:
    readings = FakeReadings()
    alerts = FakeAlerts()
    thresholds = FakeThresholds([Threshold(SensorType.temperature, Severity.critical, min_value=-40.0)])

    result = _pipeline(readings=readings, thresholds=thresholds, alerts=alerts).ingest(_raw(-60.0))

    assert result.state is IngestionState.invalid
    assert result.persisted is False
    assert result.reason == "value outside absolute range"
    assert result.violations == ()
    assert result.stored.value == -60.0
    assert result.stored.is_valid is False
    assert result.stored.quality_score == pytest.approx(0.5)
    assert readings.saved == []
    assert alerts.batches == []


@pytest.mark.parametrize("provenance", [Provenance.backup, Provenance.simulated])
def test_out_of_range_fallback_reading_is_still_stored(provenance: Provenance) -> None:
    readings = FakeReadings()
    thresholds = FakeThresholds([Threshold(SensorType.temperature, Severity.critical, min_value=-40.0)])

    result = _pipeline(readings=readings, thresholds=thresholds).ingest(
        _raw(-60.0, provenance=provenance)
    )

    assert result.state is IngestionState.persisted
    assert result.persisted is True
    assert result.stored.is_valid is False
    assert result.stored.quality_score == pytest.approx(0.2)
    assert readings.saved == [result.stored]
    assert len(result.violations) == 1


def test_previous_reading_feeds_jump_detection() -> None:
    readings = FakeReadings()
    pipeline = _pipeline(readings=readings)

    pipeline.ingest(_raw(20.0, timestamp=_NOW - timedelta(minutes=1)))
    result = pipeline.ingest(_raw(35.0))

    assert result.stored.quality_score == pytest.approx(0.7)
    assert readings.requested[-1] == ("sensor-1", 5)


def test_naive_timestamp_and_string_type_are_normalised() -> None:
    result = _pipeline().ingest(
        _raw(22.0, sensor_type="Temperature", timestamp=datetime(2024, 3, 1, 8, 30))
    )

    assert result.stored.sensor_type is SensorType.temperature
    assert result.stored.timestamp == _NOW


@pytest.mark.parametrize(
    "overrides",
    [
        {"sensor_id": ""},
        {"sensor_id": "   "},
        {"sensor_type": None},
        {"value": "22.0"},
        {"value": None},
        {"value": True},
        {"timestamp": None},
        {"provenance": "guessed"},
        {"uptime_seconds": "soon"},
    ],
)
def test_malformed_input_is_rejected_before_scoring(overrides) -> None:
    readings = FakeReadings()
    overrides = dict(overrides)
    value = overrides.pop("value", 22.0)

    with pytest.raises(InvalidReading):
        _pipeline(readings=readings).ingest(_raw(value, **overrides))

    assert readings.requested == []
    assert readings.saved == []


def test_unknown_sensor_type_surfaces_as_pipeline_error() -> None:
    readings = FakeReadings()

    with pytest.raises(PipelineError) as excinfo:
        _pipeline(readings=readings).ingest(_raw(1.0, sensor_type="radiation"))

    assert excinfo.value.stage == "score"
    assert isinstance(excinfo.value.__cause__, UnknownSensorType)
    assert readings.saved == []


@pytest.mark.parametrize("value", [math.nan, math.inf])
def test_non_finite_value_ends_in_invalid_state(value: float, caplog) -> None:
    readings = FakeReadings()
    alerts = FakeAlerts()
    thresholds = FakeThresholds([Threshold(SensorType.temperature, Severity.high, max_value=35.0)])
    caplog.set_level(logging.WARNING, logger="services.pipeline")

    result = _pipeline(readings=readings, thresholds=thresholds, alerts=alerts).ingest(_raw(value))

    assert result.state is IngestionState.invalid
    assert result.persisted is False
    assert result.violations == ()
    assert result.stored.quality_score == 0.0
    assert readings.saved == []
    assert alerts.batches == []
    assert any(
        record.getMessage() == "Rejecting invalid reading" and record.reason == "non-finite value"
        for record in caplog.records
    )


def test_history_failure_is_reported_with_stage() -> None:
    readings = FakeReadings()
    readings.fail_on = "fetch"

    with pytest.raises(PipelineError) as excinfo:
        _pipeline(readings=readings).ingest(_raw(22.0))

    assert excinfo.value.stage == "history"
    assert isinstance(excinfo.value.__cause__, ConnectionError)


def test_threshold_failure_prevents_persistence() -> None:
    readings = FakeReadings()

    with pytest.raises(PipelineError) as excinfo:
        _pipeline(readings=readings, thresholds=FakeThresholds(fail=True)).ingest(_raw(22.0))

    assert excinfo.value.stage == "thresholds"
    assert readings.saved == []


def test_persistence_failure_skips_notification(caplog) -> None:
    readings = FakeReadings()
    readings.fail_on = "save"
    alerts = FakeAlerts()
    thresholds = FakeThresholds([Threshold(SensorType.temperature, Severity.high, max_value=35.0)])
    caplog.set_level(logging.ERROR, logger="services.pipeline")

    with pytest.raises(PipelineError) as excinfo:
        _pipeline(readings=readings, thresholds=thresholds, alerts=alerts).ingest(_raw(40.0))

    assert excinfo.value.stage == "persist"
    assert alerts.batches == []
    record = next(record for record in caplog.records if record.getMessage() == "Ingestion failed")
    assert record.stage == "persist"
    assert record.sensor_id == "sensor-1"


def test_notification_failure_keeps_reading_stored(caplog) -> None:
    readings = FakeReadings()
    thresholds = FakeThresholds([Threshold(SensorType.temperature, Severity.high, max_value=35.0)])
    caplog.set_level(logging.ERROR, logger="services.pipeline")

    result = _pipeline(
        readings=readings, thresholds=thresholds, alerts=FakeAlerts(fail=True)
    ).ingest(_raw(38.0))

    assert result.persisted is True
    assert result.notified is False
    assert len(result.violations) == 1
    assert readings.saved == [result.stored]
    assert any("Alert notification failed" in record.getMessage() for record in caplog.records)
