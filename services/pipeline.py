"""Ingestion of raw readings: validate, score, evaluate, persist, notify."""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from numbers import Real
from typing import List, Protocol, Sequence

from models.errors import InvalidReading, PipelineError, UnknownSensorType
from models.records import (
    IngestionResult,
    IngestionState,
    Provenance,
    RawReading,
    ReadingFilter,
    ScoredReading,
    SensorType,
    Threshold,
    ViolationRecord,
)
from services.scorer import QualityScorer
from services.thresholds import ThresholdEngine

logger = logging.getLogger(__name__)


class ReadingRepository(Protocol):
    def fetch_recent_readings(self, sensor_id: str, n: int) -> List[ScoredReading]: ...

    def fetch_readings_in_range(self, query: ReadingFilter) -> List[ScoredReading]: ...

    def save(self, reading: ScoredReading) -> None: ...


class ThresholdRepository(Protocol):
    def active_thresholds_for(self, sensor_type: SensorType) -> List[Threshold]: ...


class AlertSink(Protocol):
    def notify(self, violations: Sequence[ViolationRecord]) -> None: ...


class IngestionPipeline:
    """Moves one raw reading through the ingestion state machine.

    ``received -> range_checked -> scored -> threshold_evaluated -> persisted``,
    with ``invalid`` reachable after the range check for non-finite values and
    for real readings outside the absolute range; invalid readings keep their
    score on the result but are neither evaluated nor stored.
    Collaborator failures are raised as :class:`PipelineError` and are never
    retried here; the caller decides whether to resubmit.
    """

    def __init__(
        self,
        readings: ReadingRepository,
        thresholds: ThresholdRepository,
        alerts: AlertSink,
        scorer: QualityScorer | None = None,
        engine: ThresholdEngine | None = None,
        recent_window: int = 5,
    ) -> None:
        self.readings = readings
        self.thresholds = thresholds
        self.alerts = alerts
        self.scorer = scorer or QualityScorer()
        self.engine = engine or ThresholdEngine()
        self.recent_window = recent_window

    def ingest(self, raw: RawReading) -> IngestionResult:
        reading = self._validate(raw)
        log_context = {
            "sensor_id": reading.sensor_id,
            "sensor_type": getattr(reading.sensor_type, "value", reading.sensor_type),
        }

        try:
            recent = self.readings.fetch_recent_readings(reading.sensor_id, self.recent_window)
        except Exception as exc:
            raise self._fault("history", "Failed to fetch recent readings", exc, log_context) from exc

        try:
            scored = self.scorer.score(reading, recent)
        except UnknownSensorType as exc:
            raise self._fault("score", str(exc), exc, log_context) from exc

        reason = self._rejection_reason(scored)
        if reason is not None:
            logger.warning(
                "Rejecting invalid reading",
                extra={**log_context, "state": IngestionState.invalid.value, "reason": reason},
            )
            return IngestionResult(
                stored=scored,
                violations=(),
                state=IngestionState.invalid,
                persisted=False,
                reason=reason,
            )

        try:
            active = self.thresholds.active_thresholds_for(scored.sensor_type)
            violations = tuple(self.engine.evaluate(scored, active))
        except UnknownSensorType as exc:
            raise self._fault("thresholds", str(exc), exc, log_context) from exc
        except Exception as exc:
            raise self._fault("thresholds", "Failed to load thresholds", exc, log_context) from exc

        try:
            self.readings.save(scored)
        except Exception as exc:
            raise self._fault("persist", "Failed to persist reading", exc, log_context) from exc

        notified = False
        if violations:
            try:
                self.alerts.notify(violations)
                notified = True
            except Exception:  # noqa: BLE001 - notification is fire-and-forget
                logger.exception(
                    "Alert notification failed; reading remains stored",
                    extra={**log_context, "violation_count": len(violations)},
                )

        logger.info(
            "Stored reading",
            extra={
                **log_context,
                "state": IngestionState.persisted.value,
                "quality_score": scored.quality_score,
                "violation_count": len(violations),
            },
        )
        return IngestionResult(
            stored=scored,
            violations=violations,
            state=IngestionState.persisted,
            persisted=True,
            notified=notified,
        )

    @staticmethod
    def _rejection_reason(scored: ScoredReading) -> str | None:
        if not math.isfinite(scored.value):
            return "non-finite value"
        # Out-of-range simulated and backup readings are still stored.
        if not scored.is_valid and scored.provenance is Provenance.real:
            return "value outside absolute range"
        return None

    @staticmethod
    def _validate(raw: RawReading) -> RawReading:
        sensor_id = raw.sensor_id.strip() if isinstance(raw.sensor_id, str) else ""
        if not sensor_id:
            raise InvalidReading("sensor_id is required.")

        sensor_type = raw.sensor_type
        if sensor_type is None or (isinstance(sensor_type, str) and not sensor_type.strip()):
            raise InvalidReading("sensor_type is required.")

        value = raw.value
        if isinstance(value, bool) or not isinstance(value, Real):
            raise InvalidReading(f"Reading value must be numeric, got {value!r}.")

        timestamp = raw.timestamp
        if not isinstance(timestamp, datetime):
            raise InvalidReading("timestamp is required.")
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)

        try:
            provenance = Provenance(raw.provenance)
        except ValueError as exc:
            raise InvalidReading(f"Unknown provenance {raw.provenance!r}.") from exc

        uptime = raw.uptime_seconds
        if uptime is not None and (isinstance(uptime, bool) or not isinstance(uptime, Real)):
            raise InvalidReading("uptime_seconds must be numeric.")

        return RawReading(
            sensor_id=sensor_id,
            sensor_type=sensor_type,
            value=float(value),
            timestamp=timestamp.astimezone(timezone.utc),
            provenance=provenance,
            station_id=raw.station_id,
            uptime_seconds=None if uptime is None else float(uptime),
        )

    @staticmethod
    def _fault(stage: str, message: str, exc: Exception, log_context: dict) -> PipelineError:
        logger.error(
            "Ingestion failed",
            extra={**log_context, "stage": stage, "reason": str(exc) or type(exc).__name__},
        )
        return PipelineError(message, stage=stage)
