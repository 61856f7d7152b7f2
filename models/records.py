"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Optional, Tuple


class SensorType(str, Enum):
    """Closed set of sensor kinds the service understands."""

    temperature = "temperature"
    humidity = "humidity"
    pressure = "pressure"
    air_quality = "air_quality"
    co2 = "co2"
    noise = "noise"
    wind_speed = "wind_speed"
    wind_direction = "wind_direction"
    precipitation = "precipitation"
    uv_index = "uv_index"
    soil_moisture = "soil_moisture"
    ph = "ph"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ")


class Provenance(str, Enum):
    """Where a reading came from."""

    real = "real"
    simulated = "simulated"
    backup = "backup"


class Severity(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANKS[self]


_SEVERITY_RANKS = {
    Severity.low: 0,
    Severity.medium: 1,
    Severity.high: 2,
    Severity.critical: 3,
}


class UnitSystem(str, Enum):
    """Measurement system used when presenting values; storage is metric."""

    metric = "metric"
    imperial = "imperial"


class IngestionState(str, Enum):
    """Lifecycle states of a reading moving through the ingestion pipeline."""

    received = "received"
    range_checked = "range_checked"
    scored = "scored"
    threshold_evaluated = "threshold_evaluated"
    persisted = "persisted"
    invalid = "invalid"


@dataclass(frozen=True, slots=True)
class RawReading:
    """A measurement as submitted by a device, before any scoring."""

    sensor_id: str
    sensor_type: SensorType
    value: float
    timestamp: datetime
    provenance: Provenance = Provenance.real
    station_id: Optional[int] = None
    uptime_seconds: Optional[float] = None


@dataclass(frozen=True, slots=True)
class ScoredReading:
    """A raw reading annotated with its quality score and canonical unit."""

    sensor_id: str
    sensor_type: SensorType
    value: float
    timestamp: datetime
    provenance: Provenance
    quality_score: float
    unit: str
    is_valid: bool
    station_id: Optional[int] = None
    uptime_seconds: Optional[float] = None


@dataclass(frozen=True, slots=True)
class Threshold:
    """Admin-configured bounds for one sensor type at one severity."""

    sensor_type: SensorType
    severity: Severity
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    is_active: bool = True
    description: str = ""

    def __post_init__(self) -> None:
        if self.min_value is None and self.max_value is None:
            raise ValueError("Either min_value or max_value must be provided.")
        if (
            self.min_value is not None
            and self.max_value is not None
            and self.min_value >= self.max_value
        ):
            raise ValueError("min_value must be less than max_value.")


@dataclass(frozen=True, slots=True)
class ViolationRecord:
    """One breached threshold bound for one reading."""

    sensor_id: str
    sensor_type: SensorType
    severity: Severity
    actual_value: float
    threshold_value: float
    message: str
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class ReadingFilter:
    """Time window plus optional sensor, station and type narrowing."""

    start_time: datetime
    end_time: datetime
    sensor_id: Optional[str] = None
    station_id: Optional[int] = None
    sensor_type: Optional[SensorType] = None

    def __post_init__(self) -> None:
        if self.start_time >= self.end_time:
            raise ValueError("Start time must be before end time.")

    def matches(self, reading: ScoredReading) -> bool:
        if not self.start_time <= reading.timestamp <= self.end_time:
            return False
        if self.sensor_id is not None and reading.sensor_id != self.sensor_id:
            return False
        if self.station_id is not None and reading.station_id != self.station_id:
            return False
        if self.sensor_type is not None and reading.sensor_type != self.sensor_type:
            return False
        return True


@dataclass(frozen=True, slots=True)
class AggregationBucket:
    start_time: datetime
    end_time: datetime
    count: int
    min: float
    max: float
    average: float


@dataclass(frozen=True, slots=True)
class AggregationSummary:
    count: int = 0
    min: Optional[float] = None
    max: Optional[float] = None
    average: Optional[float] = None


@dataclass(frozen=True, slots=True)
class AggregatedResult:
    """Overall statistics plus the sparse, ascending bucket sequence."""

    overall: AggregationSummary
    buckets: Tuple[AggregationBucket, ...] = ()
    per_sensor_count: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class IngestionResult:
    stored: ScoredReading
    violations: Tuple[ViolationRecord, ...]
    state: IngestionState
    persisted: bool
    notified: bool = False
    reason: Optional[str] = None
