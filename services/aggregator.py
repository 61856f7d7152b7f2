"""Time-bucketed aggregation of scored readings."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from models.records import (
    AggregatedResult,
    AggregationBucket,
    AggregationSummary,
    ScoredReading,
)


@dataclass
class _RunningStats:
    count: int = 0
    total: float = 0.0
    min_value: float | None = None
    max_value: float | None = None

    def add(self, value: float) -> None:
        self.count += 1
        self.total += value
        if self.min_value is None or value < self.min_value:
            self.min_value = value
        if self.max_value is None or value > self.max_value:
            self.max_value = value

    @property
    def mean(self) -> float | None:
        if not self.count:
            return None
        # Rounding in the running total must not push the mean outside [min, max].
        return min(max(self.total / self.count, self.min_value), self.max_value)


class Aggregator:
    """Pure aggregation component that can be unit tested in isolation.

    Readings are assigned to ``floor((timestamp - start_time) / bucket_width)``.
    Buckets that receive no reading are left out of the result rather than
    zero-filled, so consumers charting the output must expect gaps. When an
    ``end_time`` is supplied the window is closed on both sides: a reading
    stamped exactly at ``end_time`` joins the final bucket.
    """

    def aggregate(
        self,
        readings: Iterable[ScoredReading],
        bucket_width: timedelta,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
    ) -> AggregatedResult:
        if bucket_width <= timedelta(0):
            raise ValueError("Bucket width must be positive.")

        items = list(readings)
        if not items:
            return AggregatedResult(overall=AggregationSummary())

        origin = start_time or min(reading.timestamp for reading in items)
        last_index: int | None = None
        if end_time is not None:
            last_index = max(math.ceil((end_time - origin) / bucket_width) - 1, 0)

        overall = _RunningStats()
        per_bucket: Dict[int, _RunningStats] = {}
        per_sensor_count: Dict[str, int] = {}

        for reading in items:
            value = reading.value
            overall.add(value)

            index = math.floor((reading.timestamp - origin) / bucket_width)
            if last_index is not None and index > last_index:
                index = last_index
            per_bucket.setdefault(index, _RunningStats()).add(value)

            per_sensor_count[reading.sensor_id] = per_sensor_count.get(reading.sensor_id, 0) + 1

        buckets: List[AggregationBucket] = []
        for index in sorted(per_bucket):
            stats = per_bucket[index]
            bucket_start = origin + bucket_width * index
            bucket_end = bucket_start + bucket_width
            if end_time is not None and bucket_end > end_time:
                bucket_end = end_time
            buckets.append(
                AggregationBucket(
                    start_time=bucket_start,
                    end_time=bucket_end,
                    count=stats.count,
                    min=stats.min_value,
                    max=stats.max_value,
                    average=stats.mean,
                )
            )

        return AggregatedResult(
            overall=AggregationSummary(
                count=overall.count,
                min=overall.min_value,
                max=overall.max_value,
                average=overall.mean,
            ),
            buckets=tuple(buckets),
            per_sensor_count=per_sensor_count,
        )
