"""History-level data quality assessment for a single sensor."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Sequence

from models.records import ScoredReading

GAP_THRESHOLD = timedelta(hours=2)
STALE_THRESHOLD = timedelta(hours=2)
GAP_PENALTY = 0.1
STALE_PENALTY = 0.3
ANOMALY_PENALTY = 0.05
ANOMALY_SIGMA = 3.0
VALID_SCORE = 0.7


@dataclass(frozen=True, slots=True)
class DataGap:
    before: datetime
    after: datetime

    @property
    def duration(self) -> timedelta:
        return self.after - self.before


@dataclass(frozen=True, slots=True)
class Anomaly:
    index: int
    value: float
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class QualityReport:
    is_valid: bool
    score: float
    issues: List[str]
    readings_count: int = 0
    gaps: List[DataGap] = field(default_factory=list)
    anomalies: List[Anomaly] = field(default_factory=list)


def detect_gaps(readings: Sequence[ScoredReading]) -> List[DataGap]:
    gaps: List[DataGap] = []
    for previous, current in zip(readings, readings[1:]):
        if current.timestamp - previous.timestamp > GAP_THRESHOLD:
            gaps.append(DataGap(before=previous.timestamp, after=current.timestamp))
    return gaps


def detect_anomalies(readings: Sequence[ScoredReading]) -> List[Anomaly]:
    """Flag readings further than three population deviations from the mean."""
    if not readings:
        return []
    values = [reading.value for reading in readings]
    mean = math.fsum(values) / len(values)
    std_dev = math.sqrt(math.fsum((value - mean) ** 2 for value in values) / len(values))
    return [
        Anomaly(index=index, value=reading.value, timestamp=reading.timestamp)
        for index, reading in enumerate(readings)
        if abs(reading.value - mean) > ANOMALY_SIGMA * std_dev
    ]


def assess_history(readings: Sequence[ScoredReading], now: datetime) -> QualityReport:
    """Score how trustworthy a sensor's recent history is as a whole.

    ``readings`` must be sorted by timestamp. The score starts from the mean
    stored quality score and loses points for gaps, staleness and outliers.
    """
    if not readings:
        return QualityReport(
            is_valid=False,
            score=0.0,
            issues=["No data available for the specified period"],
        )

    issues: List[str] = []
    score = 0.0

    gaps = detect_gaps(readings)
    if gaps:
        issues.append(f"Found {len(gaps)} data gaps in the time series")
        score -= len(gaps) * GAP_PENALTY

    if now - readings[-1].timestamp > STALE_THRESHOLD:
        issues.append("Data appears to be stale")
        score -= STALE_PENALTY

    score += math.fsum(reading.quality_score for reading in readings) / len(readings)

    anomalies = detect_anomalies(readings)
    if anomalies:
        issues.append(f"Detected {len(anomalies)} potential anomalies")
        score -= len(anomalies) * ANOMALY_PENALTY

    final_score = round(min(1.0, max(0.0, score)), 6)
    return QualityReport(
        is_valid=final_score >= VALID_SCORE,
        score=final_score,
        issues=issues or ["No quality issues detected"],
        readings_count=len(readings),
        gaps=gaps,
        anomalies=anomalies,
    )
