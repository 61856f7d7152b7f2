from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import (
    render_aggregation,
    render_import,
    render_reading,
    render_thresholds,
)


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for interacting with the sensor quality service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1)
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Service base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    poll_interval: Optional[float] = typer.Option(
        None,
        "--poll-interval",
        help="Seconds between status checks when waiting for an import.",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Maximum seconds to wait when polling for an import.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(
        base_url=base_url,
        poll_interval=poll_interval,
        poll_timeout=timeout,
    )
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("ingest")
def ingest_command(
    ctx: typer.Context,
    sensor_id: str = typer.Argument(..., help="Sensor serial number."),
    sensor_type: str = typer.Argument(..., help="Sensor type, e.g. temperature."),
    value: float = typer.Argument(..., help="Measured value."),
    provenance: str = typer.Option("real", "--provenance", help="real, simulated or backup."),
    station_id: Optional[int] = typer.Option(None, "--station", help="Station identifier."),
    uptime: Optional[float] = typer.Option(
        None, "--uptime", help="Seconds since the sensor started reporting."
    ),
    timestamp: Optional[str] = typer.Option(
        None, "--timestamp", help="ISO 8601 timestamp; defaults to now."
    ),
) -> None:
    """Submit one reading and show its quality score and violations."""
    state = _get_state(ctx)
    payload = {
        "sensor_id": sensor_id,
        "sensor_type": sensor_type,
        "value": value,
        "provenance": provenance,
        "station_id": station_id,
        "uptime_seconds": uptime,
        "timestamp": timestamp,
    }
    result = state.client.ingest({key: item for key, item in payload.items() if item is not None})
    render_reading(result)


@app.command("validate")
def validate_command(
    ctx: typer.Context,
    sensor_type: str = typer.Argument(..., help="Sensor type, e.g. temperature."),
    value: float = typer.Argument(..., help="Hypothetical value to check."),
) -> None:
    """Check a value against the active thresholds without storing it."""
    state = _get_state(ctx)
    render_reading(state.client.validate(sensor_type, value))


@app.command("aggregate")
def aggregate_command(
    ctx: typer.Context,
    start: str = typer.Option(..., "--start", help="Window start (ISO 8601)."),
    end: str = typer.Option(..., "--end", help="Window end (ISO 8601)."),
    interval: Optional[float] = typer.Option(
        None, "--interval", help="Bucket width in minutes."
    ),
    sensor_id: Optional[str] = typer.Option(None, "--sensor", help="Sensor serial number."),
    station_id: Optional[int] = typer.Option(None, "--station", help="Station identifier."),
    sensor_type: Optional[str] = typer.Option(None, "--type", help="Sensor type."),
    units: str = typer.Option("metric", "--units", help="metric or imperial (needs --type)."),
) -> None:
    """Show min/max/average statistics per time bucket."""
    state = _get_state(ctx)
    payload = state.client.aggregate(
        {
            "start_time": start,
            "end_time": end,
            "interval": interval if interval is not None else state.config.bucket_minutes,
            "sensor_id": sensor_id,
            "station_id": station_id,
            "sensor_type": sensor_type,
            "units": units,
        }
    )
    render_aggregation(payload)


@app.command("thresholds")
def thresholds_command(ctx: typer.Context) -> None:
    """List configured thresholds."""
    state = _get_state(ctx)
    render_thresholds(state.client.list_thresholds())


@app.command("import")
def import_command(
    ctx: typer.Context,
    file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Path to CSV file."),
    wait: bool = typer.Option(
        False,
        "--wait/--no-wait",
        help="Wait for the import to finish and display the result.",
    ),
    poll_interval: Optional[float] = typer.Option(
        None,
        "--poll-interval",
        help="Override poll interval while waiting.",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Override timeout while waiting.",
    ),
) -> None:
    """Upload a CSV file of readings for asynchronous ingestion."""
    state = _get_state(ctx)
    typer.echo(f"Uploading {file} to {state.config.base_url} ...")
    import_id = state.client.upload_import(file)
    typer.secho(f"Import accepted. import_id={import_id}", fg=typer.colors.GREEN)

    if not wait:
        return

    interval = poll_interval if poll_interval is not None else state.config.poll_interval
    poll_timeout = timeout if timeout is not None else state.config.poll_timeout
    typer.echo(f"Waiting for import (interval={interval}s, timeout={poll_timeout}s)...")
    result = state.client.poll_import(import_id, interval=interval, timeout=poll_timeout)
    typer.echo()
    render_import(result)


@app.command("import-result")
def import_result_command(
    ctx: typer.Context,
    import_id: str = typer.Argument(..., help="Identifier returned from the import command."),
) -> None:
    """Fetch the status and row errors of an import."""
    state = _get_state(ctx)
    render_import(state.client.get_import(import_id))
