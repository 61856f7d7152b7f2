"""Evaluation of scored readings against configured thresholds."""

from __future__ import annotations

from typing import Iterable, List

from models.records import ScoredReading, SensorType, Threshold, ViolationRecord
from services.units import parse_sensor_type


class ThresholdEngine:
    """Pure evaluator; thresholds are read, never modified."""

    def evaluate(
        self,
        reading: ScoredReading,
        thresholds: Iterable[Threshold],
    ) -> List[ViolationRecord]:
        sensor_type = parse_sensor_type(reading.sensor_type)
        value = reading.value
        violations: List[ViolationRecord] = []

        for threshold in thresholds:
            if not threshold.is_active:
                continue
            if parse_sensor_type(threshold.sensor_type) is not sensor_type:
                continue

            if threshold.min_value is not None and value < threshold.min_value:
                violations.append(
                    self._violation(reading, sensor_type, threshold, threshold.min_value, "below minimum")
                )
            elif threshold.max_value is not None and value > threshold.max_value:
                violations.append(
                    self._violation(reading, sensor_type, threshold, threshold.max_value, "above maximum")
                )

        return violations

    @staticmethod
    def _violation(
        reading: ScoredReading,
        sensor_type: SensorType,
        threshold: Threshold,
        bound: float,
        direction: str,
    ) -> ViolationRecord:
        message = (
            f"Sensor {sensor_type.label} reading {reading.value} is {direction} "
            f"threshold {bound}. {threshold.description or ''}"
        ).strip()
        return ViolationRecord(
            sensor_id=reading.sensor_id,
            sensor_type=sensor_type,
            severity=threshold.severity,
            actual_value=reading.value,
            threshold_value=bound,
            message=message,
            timestamp=reading.timestamp,
        )
