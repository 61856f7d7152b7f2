"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from models.records import IngestionState, Provenance, SensorType, Severity, UnitSystem


class ImportStatus(str, Enum):
    """CSV import lifecycle states exposed via the API."""

    uploaded = "uploaded"
    processing = "processing"
    processed = "processed"
    partial = "partial"
    failed = "failed"


class ReadingIn(BaseModel):
    """Reading posted by a device or gateway."""

    sensor_id: str = Field(..., description="Sensor serial number.")
    sensor_type: str = Field(..., description="One of the supported sensor types.")
    value: float
    timestamp: Optional[datetime] = Field(
        default=None, description="Measurement time; defaults to the time of receipt."
    )
    provenance: Provenance = Provenance.real
    station_id: Optional[int] = None
    uptime_seconds: Optional[float] = Field(
        default=None, ge=0, description="Seconds since the device started reporting."
    )


class ScoredReadingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    sensor_id: str
    sensor_type: SensorType
    value: float
    timestamp: datetime
    provenance: Provenance
    quality_score: float = Field(..., ge=0, le=1)
    unit: str
    is_valid: bool
    station_id: Optional[int] = None


class ViolationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    sensor_id: str
    sensor_type: SensorType
    severity: Severity
    actual_value: float
    threshold_value: float
    message: str
    timestamp: datetime


class IngestionResponse(BaseModel):
    reading: ScoredReadingOut
    violations: List[ViolationOut] = Field(default_factory=list)
    state: IngestionState
    persisted: bool
    notified: bool


class ValidateRequest(BaseModel):
    """Hypothetical value checked against the current thresholds."""

    sensor_type: str
    value: float = Field(..., allow_inf_nan=False)


class ValidationResponse(BaseModel):
    reading: ScoredReadingOut
    violations: List[ViolationOut] = Field(default_factory=list)


class AggregationBucketOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    start_time: datetime
    end_time: datetime
    count: int = Field(..., ge=1)
    min: float
    max: float
    average: float


class AggregationSummaryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    count: int = Field(..., ge=0)
    min: Optional[float] = None
    max: Optional[float] = None
    average: Optional[float] = None


class AggregationResponse(BaseModel):
    start_time: datetime
    end_time: datetime
    interval_minutes: float
    units: UnitSystem = UnitSystem.metric
    unit: Optional[str] = Field(
        default=None, description="Unit of the statistics when a sensor_type filter is applied."
    )
    overall: AggregationSummaryOut
    buckets: List[AggregationBucketOut] = Field(default_factory=list)
    per_sensor_count: Dict[str, int] = Field(default_factory=dict)


class QualityReportResponse(BaseModel):
    sensor_id: str
    hours: float
    is_valid: bool
    score: float = Field(..., ge=0, le=1)
    issues: List[str]
    readings_count: int = Field(..., ge=0)
    gap_count: int = Field(default=0, ge=0)
    anomaly_count: int = Field(default=0, ge=0)


class ThresholdIn(BaseModel):
    sensor_type: str
    severity: Severity
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    is_active: bool = True
    description: str = ""


class ThresholdOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    sensor_type: SensorType
    severity: Severity
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    is_active: bool
    description: str


class AlertOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    alert_id: int
    sensor_id: str
    sensor_type: SensorType
    severity: Severity
    value: float
    threshold_value: float
    message: str
    first_seen: datetime
    last_seen: datetime
    occurrences: int = Field(..., ge=1)
    resolved_at: Optional[datetime] = None


class ImportUploadResponse(BaseModel):
    """Immediate response payload after accepting a CSV import."""

    import_id: str = Field(..., description="Generated identifier for the import job.")


class RowError(BaseModel):
    """Details about a CSV row that failed validation or ingestion."""

    row_number: int = Field(..., ge=1)
    reason: str


class ImportResult(BaseModel):
    """Full record representing a CSV import job."""

    import_id: str
    status: ImportStatus
    uploaded_at: datetime
    processed_at: Optional[datetime] = None
    processing_ms: Optional[int] = Field(
        default=None, description="Duration in milliseconds from start to finish."
    )
    accepted_count: int = Field(default=0, ge=0)
    violation_count: int = Field(default=0, ge=0)
    errors: List[RowError] = Field(default_factory=list)
