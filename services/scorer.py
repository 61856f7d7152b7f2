"""Confidence scoring for individual sensor readings."""

from __future__ import annotations

import math
from typing import Optional, Sequence

from models.records import Provenance, RawReading, ScoredReading
from services.units import SensorRange, parse_sensor_type, range_for

BASELINE_SCORE = 1.0
NON_REAL_PENALTY = 0.3
OUT_OF_RANGE_PENALTY = 0.5
UNUSUAL_VALUE_PENALTY = 0.2
LARGE_JUMP_PENALTY = 0.3
MODERATE_JUMP_PENALTY = 0.1
WARM_UP_PENALTY = 0.3
DEFAULT_WARM_UP_SECONDS = 5.0


class QualityScorer:
    """Stateless scorer turning a raw reading into a scored one.

    Deductions are additive and applied in a fixed order so identical inputs
    always produce identical scores:

    1. non-finite values score 0 and are invalid, nothing else runs;
    2. simulated or backup provenance;
    3. value outside the absolute range (invalid) or outside the usual band;
    4. jump from the previous reading of the same sensor;
    5. sensor still warming up.

    The running score is then clamped to ``[0, 1]``.
    """

    def __init__(self, warm_up_seconds: float = DEFAULT_WARM_UP_SECONDS) -> None:
        self.warm_up_seconds = warm_up_seconds

    def score(
        self,
        reading: RawReading,
        recent: Sequence[ScoredReading] = (),
    ) -> ScoredReading:
        limits = range_for(reading.sensor_type)

        if not math.isfinite(reading.value):
            return self._build(reading, limits, score=0.0, is_valid=False)

        score = BASELINE_SCORE
        is_valid = True

        if reading.provenance != Provenance.real:
            score -= NON_REAL_PENALTY

        if reading.value < limits.min or reading.value > limits.max:
            score -= OUT_OF_RANGE_PENALTY
            is_valid = False
        elif reading.value < limits.usual_min or reading.value > limits.usual_max:
            score -= UNUSUAL_VALUE_PENALTY

        previous = self._previous_value(reading, recent)
        if previous is not None:
            delta = limits.delta(previous, reading.value)
            if delta > limits.large_jump:
                score -= LARGE_JUMP_PENALTY
            elif delta > limits.moderate_jump:
                score -= MODERATE_JUMP_PENALTY

        if (
            reading.uptime_seconds is not None
            and reading.uptime_seconds < self.warm_up_seconds
        ):
            score -= WARM_UP_PENALTY

        score = min(1.0, max(0.0, score))
        return self._build(reading, limits, score=round(score, 6), is_valid=is_valid)

    @staticmethod
    def _previous_value(
        reading: RawReading, recent: Sequence[ScoredReading]
    ) -> Optional[float]:
        # ``recent`` is ordered oldest first; the last matching entry wins.
        for candidate in reversed(recent):
            if candidate.sensor_id != reading.sensor_id:
                continue
            if not math.isfinite(candidate.value):
                continue
            return candidate.value
        return None

    @staticmethod
    def _build(
        reading: RawReading, limits: SensorRange, score: float, is_valid: bool
    ) -> ScoredReading:
        return ScoredReading(
            sensor_id=reading.sensor_id,
            sensor_type=parse_sensor_type(reading.sensor_type),
            value=reading.value,
            timestamp=reading.timestamp,
            provenance=reading.provenance,
            quality_score=score,
            unit=limits.unit,
            is_valid=is_valid,
            station_id=reading.station_id,
            uptime_seconds=reading.uptime_seconds,
        )
