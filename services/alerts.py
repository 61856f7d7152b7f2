"""In-process alert sink that folds repeated violations into active alerts."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from functools import lru_cache
from itertools import count
from threading import Lock
from typing import Deque, Dict, List, Optional, Sequence, Tuple

from models.records import SensorType, Severity, ViolationRecord

logger = logging.getLogger(__name__)

_AlertKey = Tuple[str, SensorType, Severity]


@dataclass(frozen=True, slots=True)
class Alert:
    alert_id: int
    sensor_id: str
    sensor_type: SensorType
    severity: Severity
    value: float
    threshold_value: float
    message: str
    first_seen: datetime
    last_seen: datetime
    occurrences: int = 1
    resolved_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.resolved_at is None


class AlertService:
    """Keeps at most one active alert per sensor, sensor type and severity.

    Only the newest `max_resolved` resolved alerts stay retrievable.
    """

    def __init__(self, max_resolved: int = 100) -> None:
        if max_resolved < 0:
            raise ValueError("max_resolved must not be negative.")
        self.max_resolved = max_resolved
        self._resolved: Deque[int] = deque()
        self._alerts: Dict[int, Alert] = {}
        self._active: Dict[_AlertKey, int] = {}
        self._ids = count(1)
        self._lock = Lock()

    def notify(self, violations: Sequence[ViolationRecord]) -> None:
        with self._lock:
            for violation in violations:
                self._record(violation)

    def active_alerts(self) -> List[Alert]:
        with self._lock:
            alerts = [self._alerts[alert_id] for alert_id in self._active.values()]
        return sorted(alerts, key=lambda alert: (-alert.severity.rank, alert.last_seen))

    def get(self, alert_id: int) -> Alert:
        with self._lock:
            alert = self._alerts.get(alert_id)
        if alert is None:
            raise KeyError(f"Alert {alert_id} not found.")
        return alert

    def resolve(self, alert_id: int) -> Alert:
        with self._lock:
            alert = self._alerts.get(alert_id)
            if alert is None:
                raise KeyError(f"Alert {alert_id} not found.")
            if not alert.is_active:
                return alert
            resolved = replace(alert, resolved_at=datetime.now(timezone.utc))
            self._alerts[alert_id] = resolved
            self._active.pop(self._key_for(resolved), None)
            self._resolved.append(alert_id)
            while len(self._resolved) > self.max_resolved:
                self._alerts.pop(self._resolved.popleft(), None)
        logger.info(
            "Resolved alert",
            extra={"sensor_id": resolved.sensor_id, "severity": resolved.severity.value},
        )
        return resolved

    def _record(self, violation: ViolationRecord) -> None:
        key = (violation.sensor_id, violation.sensor_type, violation.severity)
        existing_id = self._active.get(key)
        if existing_id is not None:
            existing = self._alerts[existing_id]
            self._alerts[existing_id] = replace(
                existing,
                value=violation.actual_value,
                threshold_value=violation.threshold_value,
                message=violation.message,
                last_seen=violation.timestamp,
                occurrences=existing.occurrences + 1,
            )
            return

        alert_id = next(self._ids)
        self._alerts[alert_id] = Alert(
            alert_id=alert_id,
            sensor_id=violation.sensor_id,
            sensor_type=violation.sensor_type,
            severity=violation.severity,
            value=violation.actual_value,
            threshold_value=violation.threshold_value,
            message=violation.message,
            first_seen=violation.timestamp,
            last_seen=violation.timestamp,
        )
        self._active[key] = alert_id
        logger.warning(
            violation.message,
            extra={
                "sensor_id": violation.sensor_id,
                "sensor_type": violation.sensor_type.value,
                "severity": violation.severity.value,
            },
        )

    @staticmethod
    def _key_for(alert: Alert) -> _AlertKey:
        return (alert.sensor_id, alert.sensor_type, alert.severity)


@lru_cache
def build_default_alert_service() -> AlertService:
    return AlertService()
