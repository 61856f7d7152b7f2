"""Unit tests for the sensor range table."""

from __future__ import annotations

import pytest

from models.errors import UnknownSensorType
from models.records import SensorType, UnitSystem
from services.units import convert, parse_sensor_type, range_for


def test_every_sensor_type_has_a_range() -> None:
    for sensor_type in SensorType:
        limits = range_for(sensor_type)

        assert limits.min < limits.max
        assert limits.min <= limits.usual_min < limits.usual_max <= limits.max
        assert 0 < limits.moderate_jump < limits.large_jump
        assert limits.unit


def test_temperature_range_and_unit() -> None:
    limits = range_for(SensorType.temperature)

    assert (limits.min, limits.max, limits.unit) == (-50.0, 150.0, "°C")
    assert (limits.usual_min, limits.usual_max) == (-10.0, 100.0)


def test_lookup_accepts_case_insensitive_strings() -> None:
    assert parse_sensor_type(" CO2 ") is SensorType.co2
    assert range_for("wind_speed").unit == "m/s"


@pytest.mark.parametrize("value", ["radiation", "", None, 42])
def test_unknown_sensor_type_is_rejected(value) -> None:
    with pytest.raises(UnknownSensorType):
        range_for(value)


def test_wind_direction_delta_wraps_around() -> None:
    limits = range_for(SensorType.wind_direction)

    assert limits.delta(350.0, 10.0) == pytest.approx(20.0)
    assert limits.delta(10.0, 190.0) == pytest.approx(180.0)
    assert range_for(SensorType.temperature).delta(20.0, 35.0) == pytest.approx(15.0)


@pytest.mark.parametrize(
    ("sensor_type", "metric", "expected", "unit"),
    [
        (SensorType.temperature, 100.0, 212.0, "°F"),
        (SensorType.temperature, -40.0, -40.0, "°F"),
        (SensorType.pressure, 1013.25, 29.92, "inHg"),
        (SensorType.wind_speed, 10.0, 22.37, "mph"),
        (SensorType.precipitation, 25.4, 1.0, "in"),
    ],
)
def test_metric_to_imperial(sensor_type, metric, expected, unit) -> None:
    value, label = convert(metric, sensor_type, UnitSystem.imperial)

    assert value == pytest.approx(expected, abs=0.01)
    assert label == unit


def test_imperial_to_metric_inverts_the_conversion() -> None:
    value, unit = convert(212.0, "temperature", to="metric", source="imperial")

    assert value == pytest.approx(100.0)
    assert unit == "°C"


def test_types_without_imperial_unit_are_unchanged() -> None:
    assert convert(55.0, SensorType.humidity, UnitSystem.imperial) == (55.0, "%")


def test_metric_to_metric_only_labels() -> None:
    assert convert(1013.25, SensorType.pressure, UnitSystem.metric) == (1013.25, "hPa")


def test_convert_rejects_unknown_system() -> None:
    with pytest.raises(ValueError):
        convert(1.0, SensorType.temperature, "kelvin")
