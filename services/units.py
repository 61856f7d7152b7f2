"""Physical ranges, canonical units and jump limits per sensor type."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple, Union

from models.errors import UnknownSensorType
from models.records import SensorType, UnitSystem


@dataclass(frozen=True, slots=True)
class SensorRange:
    """Valid range of one sensor type.

    ``min``/``max`` are the absolute physical bounds; values outside them are
    treated as invalid. ``usual_min``/``usual_max`` bound the band of everyday
    values; anything between the two pairs is unusual but possible.
    ``moderate_jump`` and ``large_jump`` are the deltas between consecutive
    readings that lower confidence. ``circular`` marks quantities that wrap
    around at ``max`` (wind direction).
    """

    min: float
    max: float
    unit: str
    usual_min: float
    usual_max: float
    moderate_jump: float
    large_jump: float
    circular: bool = False

    def delta(self, previous: float, current: float) -> float:
        difference = abs(current - previous)
        if self.circular:
            span = self.max - self.min
            difference %= span
            return min(difference, span - difference)
        return difference


_RANGES: Dict[SensorType, SensorRange] = {
    SensorType.temperature: SensorRange(-50.0, 150.0, "°C", -10.0, 100.0, 5.0, 10.0),
    SensorType.humidity: SensorRange(0.0, 100.0, "%", 5.0, 95.0, 10.0, 20.0),
    SensorType.pressure: SensorRange(300.0, 1100.0, "hPa", 870.0, 1085.0, 5.0, 10.0),
    SensorType.air_quality: SensorRange(0.0, 500.0, "AQI", 0.0, 300.0, 50.0, 100.0),
    SensorType.co2: SensorRange(0.0, 10000.0, "ppm", 250.0, 5000.0, 200.0, 500.0),
    SensorType.noise: SensorRange(0.0, 194.0, "dB", 10.0, 140.0, 15.0, 30.0),
    SensorType.wind_speed: SensorRange(0.0, 120.0, "m/s", 0.0, 60.0, 5.0, 10.0),
    SensorType.wind_direction: SensorRange(
        0.0, 360.0, "°", 0.0, 360.0, 45.0, 90.0, circular=True
    ),
    SensorType.precipitation: SensorRange(0.0, 500.0, "mm", 0.0, 300.0, 10.0, 25.0),
    SensorType.uv_index: SensorRange(0.0, 20.0, "UVI", 0.0, 15.0, 2.0, 4.0),
    SensorType.soil_moisture: SensorRange(0.0, 100.0, "%", 0.0, 100.0, 10.0, 20.0),
    SensorType.ph: SensorRange(0.0, 14.0, "pH", 3.0, 11.0, 0.5, 1.0),
}


def parse_sensor_type(value: Union[SensorType, str]) -> SensorType:
    """Resolve ``value`` to a member of the closed sensor type enumeration."""
    if isinstance(value, SensorType):
        return value
    if isinstance(value, str):
        candidate = value.strip().lower()
        try:
            return SensorType(candidate)
        except ValueError:
            pass
    raise UnknownSensorType(value)


def range_for(sensor_type: Union[SensorType, str]) -> SensorRange:
    return _RANGES[parse_sensor_type(sensor_type)]


@dataclass(frozen=True, slots=True)
class _ImperialUnit:
    unit: str
    scale: float
    offset: float = 0.0


# imperial = metric * scale + offset; types not listed share one unit in both systems.
_IMPERIAL: Dict[SensorType, _ImperialUnit] = {
    SensorType.temperature: _ImperialUnit("°F", 9.0 / 5.0, 32.0),
    SensorType.pressure: _ImperialUnit("inHg", 0.02953),
    SensorType.wind_speed: _ImperialUnit("mph", 2.236936),
    SensorType.precipitation: _ImperialUnit("in", 1.0 / 25.4),
}


def convert(
    value: float,
    sensor_type: Union[SensorType, str],
    to: Union[UnitSystem, str] = UnitSystem.imperial,
    source: Union[UnitSystem, str] = UnitSystem.metric,
) -> Tuple[float, str]:
    """Express ``value`` of ``sensor_type`` in the ``to`` unit system.

    Returns the converted value and its unit label. Converting within one
    system only normalises the unit label.
    """
    resolved = parse_sensor_type(sensor_type)
    target = UnitSystem(to)
    origin = UnitSystem(source)
    imperial = _IMPERIAL.get(resolved)
    if imperial is None:
        return value, _RANGES[resolved].unit

    if origin is target:
        converted = value
    elif target is UnitSystem.imperial:
        converted = value * imperial.scale + imperial.offset
    else:
        converted = (value - imperial.offset) / imperial.scale

    unit = imperial.unit if target is UnitSystem.imperial else _RANGES[resolved].unit
    return converted, unit
