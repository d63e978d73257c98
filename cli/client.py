from __future__ import annotations

import time
from typing import Any, Dict, List

import httpx
import typer

from cli.config import CLIConfig
from models.records import parse_timestamp


class ApiClient:
    """Minimal HTTP client for the telemetry service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.request_timeout)

    def close(self) -> None:
        self._client.close()

    def record(self, device_id: int, temperature: float, timestamp: str) -> None:
        try:
            response = self._client.post(
                "/telemetry",
                json={"deviceId": device_id, "temperature": temperature, "timestamp": timestamp},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)

    def latest(self) -> List[Dict[str, Any]]:
        try:
            response = self._client.get("/devices/temperatures")
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        payload = response.json()
        if not isinstance(payload, list):
            raise typer.BadParameter("Unexpected response payload when listing temperatures.")
        return payload

    def dead_letters(self) -> List[Dict[str, Any]]:
        try:
            response = self._client.get("/admin/dead-letters")
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    def reset(self) -> None:
        try:
            response = self._client.delete("/admin/data")
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)

    def wait_for_projection(
        self, device_id: int, timestamp: str, interval: float, timeout: float
    ) -> Dict[str, Any]:
        """Poll until the device's projection has caught up with ``timestamp``."""
        target = parse_timestamp(timestamp)
        deadline = time.monotonic() + timeout
        last_row: Dict[str, Any] | None = None
        while time.monotonic() <= deadline:
            for row in self.latest():
                if row.get("deviceId") != device_id:
                    continue
                last_row = row
                seen = row.get("timestamp")
                if seen and parse_timestamp(seen) >= target:
                    return row
            time.sleep(interval)
        typer.secho(
            (
                f"Timed out waiting for device {device_id} to reach {timestamp}. "
                f"Last seen: {last_row.get('timestamp') if last_row else 'nothing'}"
            ),
            fg=typer.colors.RED,
            err=True,
        )
        raise typer.Exit(code=1)

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: Any = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        if isinstance(detail, list):
            detail = "; ".join(
                f"{item.get('field')}: {item.get('message')}" for item in detail if isinstance(item, dict)
            )
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
