from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import pytest

from models.records import SensorType, Severity, ViolationRecord
from services.alerts import AlertService

_T0 = datetime(2024, 6, 1, tzinfo=timezone.utc)


def _violation(
    sensor_id: str = "sensor-1",
    severity: Severity = Severity.high,
    value: float = 38.0,
    minutes: int = 0,
) -> ViolationRecord:
    return ViolationRecord(
        sensor_id=sensor_id,
        sensor_type=SensorType.temperature,
        severity=severity,
        actual_value=value,
        threshold_value=35.0,
        message=f"Sensor temperature reading {value} is above maximum threshold 35.0.",
        timestamp=_T0 + timedelta(minutes=minutes),
    )


def test_repeated_violations_fold_into_one_alert() -> None:
    service = AlertService()

    service.notify([_violation(value=38.0)])
    service.notify([_violation(value=39.5, minutes=5)])

    alerts = service.active_alerts()
    assert len(alerts) == 1
    alert = alerts[0]
    assert alert.occurrences == 2
    assert alert.value == 39.5
    assert alert.first_seen == _T0
    assert alert.last_seen == _T0 + timedelta(minutes=5)


def test_alerts_are_ordered_by_severity() -> None:
    service = AlertService()

    service.notify(
        [
            _violation(sensor_id="a", severity=Severity.low),
            _violation(sensor_id="b", severity=Severity.critical),
            _violation(sensor_id="c", severity=Severity.medium),
        ]
    )

    assert [alert.severity for alert in service.active_alerts()] == [
        Severity.critical,
        Severity.medium,
        Severity.low,
    ]


def test_resolving_an_alert_reopens_the_key() -> None:
    service = AlertService()
    service.notify([_violation()])
    alert_id = service.active_alerts()[0].alert_id

    resolved = service.resolve(alert_id)
    service.notify([_violation(minutes=10)])

    assert resolved.is_active is False
    assert service.get(alert_id).resolved_at is not None
    active = service.active_alerts()
    assert len(active) == 1
    assert active[0].alert_id != alert_id
    assert active[0].occurrences == 1


def test_only_newest_resolved_alerts_are_retained() -> None:
    service = AlertService(max_resolved=1)
    service.notify([_violation(sensor_id="a"), _violation(sensor_id="b"), _violation(sensor_id="c")])
    first, second, third = sorted(alert.alert_id for alert in service.active_alerts())

    service.resolve(first)
    service.resolve(second)

    with pytest.raises(KeyError):
        service.get(first)
    assert service.get(second).is_active is False
    assert [alert.alert_id for alert in service.active_alerts()] == [third]


def test_negative_resolved_cap_is_rejected() -> None:
    with pytest.raises(ValueError):
        AlertService(max_resolved=-1)


def test_resolving_unknown_alert_raises() -> None:
    with pytest.raises(KeyError):
        AlertService().resolve(404)


def test_new_alert_is_logged_once(caplog) -> None:
    service = AlertService()
    caplog.set_level(logging.WARNING, logger="services.alerts")

    service.notify([_violation(), _violation(minutes=1)])

    records = [record for record in caplog.records if record.name == "services.alerts"]
    assert len(records) == 1
    assert records[0].severity == "high"
