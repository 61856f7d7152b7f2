"""Coordinates ingestion, queries and background CSV imports of readings."""

from __future__ import annotations

import csv
import io
import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from threading import Lock
from typing import Dict, List, Optional, Tuple, Union
from uuid import uuid4

from app.schemas import ImportResult, ImportStatus, RowError
from datastore.import_jobs import ImportJobStore, build_default_import_store
from datastore.reading_store import ReadingStore, build_default_reading_store
from datastore.threshold_store import ThresholdStore, build_default_threshold_store
from models.errors import ReadingError
from models.records import (
    AggregatedResult,
    IngestionResult,
    Provenance,
    RawReading,
    ReadingFilter,
    ScoredReading,
    SensorType,
    ViolationRecord,
)
from services.aggregator import Aggregator
from services.alerts import AlertService, build_default_alert_service
from services.pipeline import IngestionPipeline
from services.quality_report import QualityReport, assess_history
from services.scorer import QualityScorer
from services.thresholds import ThresholdEngine
from services.units import parse_sensor_type
from settings import get_settings

logger = logging.getLogger(__name__)

_REQUIRED_COLUMNS = ("sensor_id", "sensor_type", "timestamp", "value")


@dataclass(frozen=True)
class ValidationOutcome:
    reading: ScoredReading
    violations: List[ViolationRecord]


class ReadingService:
    """Entry point used by the HTTP layer for everything reading related."""

    def __init__(
        self,
        readings: ReadingStore,
        thresholds: ThresholdStore,
        alerts: AlertService,
        imports: ImportJobStore,
        aggregator: Aggregator | None = None,
        scorer: QualityScorer | None = None,
        recent_window: int = 5,
        workers: int = 4,
    ) -> None:
        self.readings = readings
        self.thresholds = thresholds
        self.alerts = alerts
        self.imports = imports
        self.aggregator = aggregator or Aggregator()
        self.scorer = scorer or QualityScorer()
        self.engine = ThresholdEngine()
        self.pipeline = IngestionPipeline(
            readings=readings,
            thresholds=thresholds,
            alerts=alerts,
            scorer=self.scorer,
            engine=self.engine,
            recent_window=recent_window,
        )
        self.executor = ThreadPoolExecutor(max_workers=workers)
        self._futures: Dict[str, Future[None]] = {}
        self._futures_lock = Lock()

    def ingest(self, raw: RawReading) -> IngestionResult:
        return self.pipeline.ingest(raw)

    def aggregate(self, query: ReadingFilter, bucket_minutes: float = 60) -> AggregatedResult:
        """Bucket the readings matching ``query`` into ``bucket_minutes`` wide intervals."""
        if bucket_minutes <= 0:
            raise ValueError("Aggregation interval must be positive.")
        matching = self.readings.fetch_readings_in_range(query)
        result = self.aggregator.aggregate(
            matching,
            bucket_width=timedelta(minutes=bucket_minutes),
            start_time=query.start_time,
            end_time=query.end_time,
        )
        logger.info(
            "Aggregated readings",
            extra={"row_count": result.overall.count, "bucket_count": len(result.buckets)},
        )
        return result

    def validate_value(
        self, sensor_type: Union[SensorType, str], value: float
    ) -> ValidationOutcome:
        """Score and evaluate a hypothetical reading without storing anything."""
        resolved = parse_sensor_type(sensor_type)
        hypothetical = RawReading(
            sensor_id="validation",
            sensor_type=resolved,
            value=float(value),
            timestamp=datetime.now(timezone.utc),
        )
        scored = self.scorer.score(hypothetical)
        violations = self.engine.evaluate(scored, self.thresholds.active_thresholds_for(resolved))
        return ValidationOutcome(reading=scored, violations=violations)

    def latest_readings(
        self,
        sensor_id: Optional[str] = None,
        station_id: Optional[int] = None,
        limit: int = 10,
    ) -> List[ScoredReading]:
        return self.readings.latest_readings(sensor_id=sensor_id, station_id=station_id, limit=limit)

    def quality_report(
        self, sensor_id: str, hours: float = 24, now: Optional[datetime] = None
    ) -> QualityReport:
        if hours <= 0:
            raise ValueError("hours must be positive.")
        end = now or datetime.now(timezone.utc)
        query = ReadingFilter(
            start_time=end - timedelta(hours=hours),
            end_time=end,
            sensor_id=sensor_id,
        )
        return assess_history(self.readings.fetch_readings_in_range(query), now=end)

    def enqueue_import(self, contents: Union[bytes, str], filename: str = "readings.csv") -> str:
        """Register a CSV import and ingest its rows on the worker pool."""
        if isinstance(contents, str):
            contents = contents.encode("utf-8")
        if not contents:
            raise ValueError("Uploaded file is empty.")

        import_id = str(uuid4())
        uploaded_at = datetime.now(timezone.utc)
        self.imports.save(
            ImportResult(import_id=import_id, status=ImportStatus.uploaded, uploaded_at=uploaded_at)
        )

        future = self.executor.submit(
            self._process_import,
            import_id=import_id,
            contents=contents,
            uploaded_at=uploaded_at,
        )
        with self._futures_lock:
            self._futures[import_id] = future
        future.add_done_callback(lambda _f, iid=import_id: self._clear_future(iid))
        logger.info("Accepted import", extra={"import_id": import_id, "reason": filename})
        return import_id

    def fetch_import(self, import_id: str) -> ImportResult:
        result = self.imports.get(import_id)
        if result is None:
            raise KeyError(f"Import {import_id!r} not found.")
        return result

    def recent_imports(self, limit: int = 20) -> List[ImportResult]:
        return self.imports.recent(limit)

    def shutdown(self) -> None:
        """Clean up executor resources during application shutdown."""
        self.executor.shutdown(wait=False, cancel_futures=True)

    def _clear_future(self, import_id: str) -> None:
        with self._futures_lock:
            self._futures.pop(import_id, None)

    def _process_import(self, import_id: str, contents: bytes, uploaded_at: datetime) -> None:
        start_time = time.perf_counter()
        self.imports.save(
            ImportResult(import_id=import_id, status=ImportStatus.processing, uploaded_at=uploaded_at)
        )

        errors: List[RowError] = []
        accepted = 0
        violation_count = 0

        try:
            rows = self._parse_rows(contents.decode("utf-8"), errors, import_id)
            for row_number, raw in rows:
                try:
                    outcome = self.pipeline.ingest(raw)
                except ReadingError as exc:
                    self._reject_row(errors, import_id, row_number, str(exc))
                    continue
                if not outcome.persisted:
                    reason = outcome.reason or "invalid reading"
                    self._reject_row(errors, import_id, row_number, reason)
                    continue
                accepted += 1
                violation_count += len(outcome.violations)

            if accepted == 0 and errors:
                status = ImportStatus.failed
            elif errors:
                status = ImportStatus.partial
            else:
                status = ImportStatus.processed
        except (UnicodeDecodeError, ValueError) as exc:
            status = ImportStatus.failed
            errors.append(RowError(row_number=1, reason=str(exc)))

        processing_ms = int((time.perf_counter() - start_time) * 1000)
        self.imports.save(
            ImportResult(
                import_id=import_id,
                status=status,
                uploaded_at=uploaded_at,
                processed_at=datetime.now(timezone.utc),
                processing_ms=processing_ms,
                accepted_count=accepted,
                violation_count=violation_count,
                errors=errors,
            )
        )
        logger.info(
            "Finished import",
            extra={
                "import_id": import_id,
                "state": status.value,
                "row_count": accepted,
                "error_count": len(errors),
                "processing_ms": processing_ms,
            },
        )

    def _parse_rows(
        self, text: str, errors: List[RowError], import_id: str
    ) -> List[Tuple[int, RawReading]]:
        reader = csv.DictReader(io.StringIO(text))
        if not reader.fieldnames:
            raise ValueError("CSV file is missing a header row.")

        normalized = {name.lower().strip(): name for name in reader.fieldnames}
        missing = [column for column in _REQUIRED_COLUMNS if column not in normalized]
        if missing:
            raise ValueError(f"CSV missing required columns: {', '.join(missing)}")

        rows: List[Tuple[int, RawReading]] = []
        for row_number, row in enumerate(reader, start=2):
            cells = {
                column: (row.get(original) or "").strip()
                for column, original in normalized.items()
            }

            absent = next((column for column in _REQUIRED_COLUMNS if not cells[column]), None)
            if absent is not None:
                self._reject_row(errors, import_id, row_number, f"missing {absent}")
                continue

            try:
                timestamp = parse_timestamp(cells["timestamp"])
            except ValueError:
                self._reject_row(errors, import_id, row_number, "invalid timestamp")
                continue

            try:
                value = float(cells["value"])
                uptime = float(cells["uptime_seconds"]) if cells.get("uptime_seconds") else None
                station_id = int(cells["station_id"]) if cells.get("station_id") else None
            except ValueError:
                self._reject_row(errors, import_id, row_number, "invalid numeric value")
                continue

            try:
                provenance = Provenance(cells.get("provenance") or Provenance.real.value)
            except ValueError:
                self._reject_row(errors, import_id, row_number, "invalid provenance")
                continue

            rows.append(
                (
                    row_number,
                    RawReading(
                        sensor_id=cells["sensor_id"],
                        sensor_type=cells["sensor_type"],
                        value=value,
                        timestamp=timestamp,
                        provenance=provenance,
                        station_id=station_id,
                        uptime_seconds=uptime,
                    ),
                )
            )
        return rows

    @staticmethod
    def _reject_row(errors: List[RowError], import_id: str, row_number: int, reason: str) -> None:
        errors.append(RowError(row_number=row_number, reason=reason))
        logger.warning(
            "Skipping row %s: %s",
            row_number,
            reason,
            extra={"import_id": import_id, "row_number": row_number, "reason": reason},
        )


def parse_timestamp(value: str) -> datetime:
    candidate = value.strip()
    if not candidate:
        raise ValueError("Timestamp is empty.")

    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise ValueError("Invalid timestamp format") from exc

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)

    return parsed.astimezone(timezone.utc)


@lru_cache
def build_default_service(workers: Optional[int] = None) -> ReadingService:
    """Factory that wires the service with the configured local stores."""
    settings = get_settings()
    return ReadingService(
        readings=build_default_reading_store(),
        thresholds=build_default_threshold_store(),
        alerts=build_default_alert_service(),
        imports=build_default_import_store(),
        scorer=QualityScorer(warm_up_seconds=settings.warm_up_seconds),
        recent_window=settings.recent_window_size,
        workers=workers or settings.import_workers,
    )
