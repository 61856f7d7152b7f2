from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_violations(violations: List[Dict[str, Any]]) -> None:
    typer.echo()
    echo_heading("Violations")
    if not violations:
        typer.echo("No thresholds breached.")
        return
    for violation in violations:
        typer.secho(
            f"  - [{violation.get('severity')}] {violation.get('message')}",
            fg=typer.colors.RED,
        )


def render_reading(payload: Dict[str, Any]) -> None:
    reading = payload.get("reading") or {}
    echo_heading("Reading")
    pairs = [
        ("sensor_id", reading.get("sensor_id")),
        ("sensor_type", reading.get("sensor_type")),
        ("value", f"{reading.get('value')} {reading.get('unit', '')}".strip()),
        ("quality_score", reading.get("quality_score")),
        ("is_valid", reading.get("is_valid")),
    ]
    if "state" in payload:
        pairs.append(("state", payload.get("state")))
    echo_key_values(pairs)
    render_violations(payload.get("violations") or [])


def render_aggregation(payload: Dict[str, Any]) -> None:
    overall = payload.get("overall") or {}
    unit = payload.get("unit")
    echo_heading(f"Overall ({unit})" if unit else "Overall")
    echo_key_values(
        [
            ("count", overall.get("count")),
            ("min", overall.get("min")),
            ("max", overall.get("max")),
            ("average", overall.get("average")),
        ]
    )

    buckets = payload.get("buckets") or []
    typer.echo()
    echo_heading(f"Buckets ({payload.get('interval_minutes')} min)")
    if not buckets:
        typer.echo("No readings in the requested window.")
        return
    for bucket in buckets:
        typer.echo(
            f"  {bucket.get('start_time')} -> {bucket.get('end_time')}: "
            f"count={bucket.get('count')} min={bucket.get('min')} "
            f"max={bucket.get('max')} avg={bucket.get('average')}"
        )


def render_import(payload: Dict[str, Any]) -> None:
    echo_heading("Import Result")
    echo_key_values(
        [
            ("import_id", payload.get("import_id")),
            ("status", payload.get("status")),
            ("uploaded_at", payload.get("uploaded_at")),
            ("processed_at", payload.get("processed_at")),
            ("processing_ms", payload.get("processing_ms")),
            ("accepted_count", payload.get("accepted_count")),
            ("violation_count", payload.get("violation_count")),
        ]
    )

    errors = payload.get("errors") or []
    typer.echo()
    echo_heading("Errors")
    if errors:
        for error in errors:
            typer.echo(f"  - row {error.get('row_number')}: {error.get('reason')}")
    else:
        typer.echo("No errors recorded.")


def render_thresholds(thresholds: List[Dict[str, Any]]) -> None:
    echo_heading("Thresholds")
    if not thresholds:
        typer.echo("No thresholds configured.")
        return
    for item in thresholds:
        state = "active" if item.get("is_active") else "inactive"
        typer.echo(
            f"  - {item.get('sensor_type')}/{item.get('severity')}: "
            f"min={item.get('min_value')} max={item.get('max_value')} ({state})"
        )
