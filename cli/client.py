from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the sensor quality service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=30.0)

    def close(self) -> None:
        self._client.close()

    def ingest(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/readings", json=payload)

    def validate(self, sensor_type: str, value: float) -> Dict[str, Any]:
        return self._request(
            "POST", "/readings/validate", json={"sensor_type": sensor_type, "value": value}
        )

    def aggregate(self, params: Dict[str, Any]) -> Dict[str, Any]:
        query = {key: value for key, value in params.items() if value is not None}
        return self._request("GET", "/readings/aggregate", params=query)

    def list_thresholds(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/thresholds")

    def upload_import(self, path: Path) -> str:
        if not path.exists():
            raise typer.BadParameter(f"File {path} does not exist.")
        if not path.is_file():
            raise typer.BadParameter(f"Path {path} is not a file.")

        with path.open("rb") as handle:
            payload = self._request(
                "POST",
                "/imports",
                files={"file": (path.name, handle, "text/csv")},
            )
        import_id = payload.get("import_id")
        if not isinstance(import_id, str):
            raise typer.BadParameter("Unexpected response payload when uploading file.")
        return import_id

    def get_import(self, import_id: str) -> Dict[str, Any]:
        response = self._client.get(f"/imports/{import_id}")
        if response.status_code == 404:
            raise typer.BadParameter(f"Import {import_id} was not found.")
        return self._decode(response)

    def poll_import(self, import_id: str, interval: float, timeout: float) -> Dict[str, Any]:
        deadline = time.monotonic() + timeout
        last_payload: Optional[Dict[str, Any]] = None
        while time.monotonic() <= deadline:
            last_payload = self.get_import(import_id)
            status = last_payload.get("status")
            if status not in {"uploaded", "processing"}:
                return last_payload
            time.sleep(interval)
        typer.secho(
            (
                f"Timed out waiting for import {import_id}. "
                f"Last status: {last_payload.get('status') if last_payload else 'unknown'}"
            ),
            fg=typer.colors.RED,
            err=True,
        )
        raise typer.Exit(code=1)

    def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        response = self._client.request(method, url, **kwargs)
        return self._decode(response)

    def _decode(self, response: httpx.Response) -> Any:
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: Any = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
