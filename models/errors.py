"""Error taxonomy for reading ingestion, scoring and evaluation."""

from __future__ import annotations

from typing import Any


class ReadingError(Exception):
    """Base class for failures raised by the reading services."""


class InvalidReading(ReadingError, ValueError):
    """Malformed input rejected before anything is scored or stored."""


class UnknownSensorType(ReadingError, ValueError):
    """A sensor type outside the supported enumeration."""

    def __init__(self, sensor_type: Any) -> None:
        super().__init__(f"Unknown sensor type {sensor_type!r}.")
        self.sensor_type = sensor_type


class PipelineError(ReadingError):
    """A scoring step or collaborator call failed; the reading was not stored."""

    def __init__(self, message: str, stage: str) -> None:
        super().__init__(message)
        self.stage = stage
