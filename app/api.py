"""HTTP route definitions for the service."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional, TypeVar

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status

from app.schemas import (
    AggregationBucketOut,
    AggregationResponse,
    AggregationSummaryOut,
    AlertOut,
    ImportResult,
    ImportUploadResponse,
    IngestionResponse,
    QualityReportResponse,
    ReadingIn,
    ScoredReadingOut,
    ThresholdIn,
    ThresholdOut,
    ValidateRequest,
    ValidationResponse,
    ViolationOut,
)
from models.errors import InvalidReading, PipelineError, UnknownSensorType
from models.records import (
    IngestionState,
    RawReading,
    ReadingFilter,
    ScoredReading,
    Severity,
    Threshold,
    UnitSystem,
)
from services.readings import ReadingService, build_default_service
from services.units import convert, parse_sensor_type

router = APIRouter()

_StatsOut = TypeVar("_StatsOut", AggregationBucketOut, AggregationSummaryOut)


def get_service() -> ReadingService:
    return build_default_service()


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _bad_request(exc: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _not_found(exc: KeyError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.args[0])


def _converted_reading(reading: ScoredReading, units: UnitSystem) -> ScoredReadingOut:
    out = ScoredReadingOut.model_validate(reading)
    if units is UnitSystem.metric:
        return out
    value, unit = convert(out.value, out.sensor_type, to=units)
    return out.model_copy(update={"value": value, "unit": unit})


def _converted_stats(stats: _StatsOut, query: ReadingFilter, units: UnitSystem) -> _StatsOut:
    if units is UnitSystem.metric or query.sensor_type is None:
        return stats
    update = {}
    for name in ("min", "max", "average"):
        value = getattr(stats, name)
        if value is not None:
            update[name] = convert(value, query.sensor_type, to=units)[0]
    return stats.model_copy(update=update)


@router.post(
    "/readings",
    status_code=status.HTTP_201_CREATED,
    response_model=IngestionResponse,
    summary="Ingest a single sensor reading.",
)
def ingest_reading(
    payload: ReadingIn,
    service: ReadingService = Depends(get_service),
) -> IngestionResponse:
    raw = RawReading(
        sensor_id=payload.sensor_id,
        sensor_type=payload.sensor_type,
        value=payload.value,
        timestamp=_as_utc(payload.timestamp or datetime.now(timezone.utc)),
        provenance=payload.provenance,
        station_id=payload.station_id,
        uptime_seconds=payload.uptime_seconds,
    )
    try:
        result = service.ingest(raw)
    except InvalidReading as exc:
        raise _bad_request(exc) from exc
    except PipelineError as exc:
        if isinstance(exc.__cause__, UnknownSensorType):
            raise _bad_request(exc.__cause__) from exc
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{exc} (stage: {exc.stage})",
        ) from exc
    if result.state is IngestionState.invalid:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Reading rejected: {result.reason}.",
        )
    return IngestionResponse(
        reading=ScoredReadingOut.model_validate(result.stored),
        violations=[ViolationOut.model_validate(item) for item in result.violations],
        state=result.state,
        persisted=result.persisted,
        notified=result.notified,
    )


@router.get(
    "/readings/aggregate",
    response_model=AggregationResponse,
    summary="Aggregate readings into fixed-width time buckets.",
)
def aggregate_readings(
    start_time: datetime = Query(..., description="Start of the window (inclusive)."),
    end_time: datetime = Query(..., description="End of the window (inclusive)."),
    interval: float = Query(60, gt=0, description="Bucket width in minutes."),
    sensor_id: Optional[str] = Query(None),
    station_id: Optional[int] = Query(None),
    sensor_type: Optional[str] = Query(None),
    units: UnitSystem = Query(UnitSystem.metric, description="metric (stored) or imperial."),
    service: ReadingService = Depends(get_service),
) -> AggregationResponse:
    if units is not UnitSystem.metric and not sensor_type:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Unit conversion requires a sensor_type filter.",
        )
    try:
        query = ReadingFilter(
            start_time=_as_utc(start_time),
            end_time=_as_utc(end_time),
            sensor_id=sensor_id,
            station_id=station_id,
            sensor_type=parse_sensor_type(sensor_type) if sensor_type else None,
        )
        result = service.aggregate(query, bucket_minutes=interval)
    except ValueError as exc:
        raise _bad_request(exc) from exc
    return AggregationResponse(
        start_time=query.start_time,
        end_time=query.end_time,
        interval_minutes=interval,
        units=units,
        unit=convert(0.0, query.sensor_type, units)[1] if query.sensor_type else None,
        overall=_converted_stats(AggregationSummaryOut.model_validate(result.overall), query, units),
        buckets=[
            _converted_stats(AggregationBucketOut.model_validate(bucket), query, units)
            for bucket in result.buckets
        ],
        per_sensor_count=dict(result.per_sensor_count),
    )


@router.post(
    "/readings/validate",
    response_model=ValidationResponse,
    summary="Check a hypothetical value against the active thresholds.",
)
def validate_reading(
    payload: ValidateRequest,
    service: ReadingService = Depends(get_service),
) -> ValidationResponse:
    try:
        outcome = service.validate_value(payload.sensor_type, payload.value)
    except UnknownSensorType as exc:
        raise _bad_request(exc) from exc
    return ValidationResponse(
        reading=ScoredReadingOut.model_validate(outcome.reading),
        violations=[ViolationOut.model_validate(item) for item in outcome.violations],
    )


@router.get(
    "/readings/latest",
    response_model=List[ScoredReadingOut],
    summary="Latest readings for a sensor, or per sensor for a station.",
)
def latest_readings(
    sensor_id: Optional[str] = Query(None),
    station_id: Optional[int] = Query(None),
    limit: int = Query(10, ge=1, le=1000),
    units: UnitSystem = Query(UnitSystem.metric, description="metric (stored) or imperial."),
    service: ReadingService = Depends(get_service),
) -> List[ScoredReadingOut]:
    try:
        readings = service.latest_readings(sensor_id=sensor_id, station_id=station_id, limit=limit)
    except ValueError as exc:
        raise _bad_request(exc) from exc
    return [_converted_reading(reading, units) for reading in readings]


@router.get(
    "/sensors/{sensor_id}/quality",
    response_model=QualityReportResponse,
    summary="Assess the data quality of a sensor's recent history.",
)
def sensor_quality(
    sensor_id: str,
    hours: float = Query(24, gt=0),
    service: ReadingService = Depends(get_service),
) -> QualityReportResponse:
    report = service.quality_report(sensor_id, hours=hours)
    return QualityReportResponse(
        sensor_id=sensor_id,
        hours=hours,
        is_valid=report.is_valid,
        score=report.score,
        issues=list(report.issues),
        readings_count=report.readings_count,
        gap_count=len(report.gaps),
        anomaly_count=len(report.anomalies),
    )


@router.post(
    "/imports",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=ImportUploadResponse,
    summary="Upload a CSV file of readings for asynchronous ingestion.",
)
async def upload_import(
    file: UploadFile = File(..., description="CSV file containing sensor readings."),
    service: ReadingService = Depends(get_service),
) -> ImportUploadResponse:
    try:
        contents = await file.read()
        import_id = service.enqueue_import(contents, filename=file.filename or "readings.csv")
    except ValueError as exc:
        raise _bad_request(exc) from exc
    finally:
        await file.close()
    return ImportUploadResponse(import_id=import_id)


@router.get(
    "/imports",
    response_model=List[ImportResult],
    summary="List recent CSV imports, newest first.",
)
def list_imports(
    limit: int = Query(20, gt=0, le=200),
    service: ReadingService = Depends(get_service),
) -> List[ImportResult]:
    return service.recent_imports(limit)


@router.get(
    "/imports/{import_id}",
    response_model=ImportResult,
    summary="Fetch the status and row errors of a CSV import.",
)
def get_import(
    import_id: str,
    service: ReadingService = Depends(get_service),
) -> ImportResult:
    try:
        return service.fetch_import(import_id)
    except KeyError as exc:
        raise _not_found(exc) from exc


@router.get("/thresholds", response_model=List[ThresholdOut], summary="List all thresholds.")
def list_thresholds(
    service: ReadingService = Depends(get_service),
) -> List[ThresholdOut]:
    return [ThresholdOut.model_validate(item) for item in service.thresholds.list_all()]


@router.put(
    "/thresholds",
    response_model=ThresholdOut,
    summary="Create or replace the threshold for a sensor type and severity.",
)
def put_threshold(
    payload: ThresholdIn,
    service: ReadingService = Depends(get_service),
) -> ThresholdOut:
    try:
        threshold = Threshold(
            sensor_type=parse_sensor_type(payload.sensor_type),
            severity=payload.severity,
            min_value=payload.min_value,
            max_value=payload.max_value,
            is_active=payload.is_active,
            description=payload.description,
        )
    except ValueError as exc:
        raise _bad_request(exc) from exc
    return ThresholdOut.model_validate(service.thresholds.put(threshold))


@router.post(
    "/thresholds/{sensor_type}/{severity}/activate",
    response_model=ThresholdOut,
    summary="Activate a threshold.",
)
def activate_threshold(
    sensor_type: str,
    severity: Severity,
    service: ReadingService = Depends(get_service),
) -> ThresholdOut:
    return _set_threshold_active(service, sensor_type, severity, True)


@router.post(
    "/thresholds/{sensor_type}/{severity}/deactivate",
    response_model=ThresholdOut,
    summary="Deactivate a threshold.",
)
def deactivate_threshold(
    sensor_type: str,
    severity: Severity,
    service: ReadingService = Depends(get_service),
) -> ThresholdOut:
    return _set_threshold_active(service, sensor_type, severity, False)


@router.delete(
    "/thresholds/{sensor_type}/{severity}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a threshold.",
)
def delete_threshold(
    sensor_type: str,
    severity: Severity,
    service: ReadingService = Depends(get_service),
) -> None:
    try:
        service.thresholds.delete(sensor_type, severity)
    except UnknownSensorType as exc:
        raise _bad_request(exc) from exc
    except KeyError as exc:
        raise _not_found(exc) from exc


def _set_threshold_active(
    service: ReadingService, sensor_type: str, severity: Severity, active: bool
) -> ThresholdOut:
    try:
        threshold = service.thresholds.set_active(sensor_type, severity, active)
    except UnknownSensorType as exc:
        raise _bad_request(exc) from exc
    except KeyError as exc:
        raise _not_found(exc) from exc
    return ThresholdOut.model_validate(threshold)


@router.get("/alerts", response_model=List[AlertOut], summary="List active alerts.")
def list_alerts(
    service: ReadingService = Depends(get_service),
) -> List[AlertOut]:
    return [AlertOut.model_validate(alert) for alert in service.alerts.active_alerts()]


@router.post(
    "/alerts/{alert_id}/resolve",
    response_model=AlertOut,
    summary="Resolve an active alert.",
)
def resolve_alert(
    alert_id: int,
    service: ReadingService = Depends(get_service),
) -> AlertOut:
    try:
        return AlertOut.model_validate(service.alerts.resolve(alert_id))
    except KeyError as exc:
        raise _not_found(exc) from exc


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
