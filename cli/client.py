from __future__ import annotations

import time
from datetime import datetime
from typing import Any, Callable, Dict, Optional

import httpx
import typer

from cli.config import CLIConfig

_RETRYABLE_STATUS = {503, 504}


class ApiClient:
    """HTTP client for the telemetry service.

    Writes are retried with exponential backoff when the service reports that
    its store is unavailable; the service itself never buffers writes.
    """

    def __init__(
        self,
        config: CLIConfig,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config
        self._client = httpx.Client(
            base_url=config.base_url, timeout=config.timeout, transport=transport
        )
        self._sleep = sleep

    def close(self) -> None:
        self._client.close()

    def get_device(self, address: str, count: Optional[int] = None) -> Dict[str, Any]:
        params = {"count": count} if count is not None else None
        try:
            response = self._client.get(f"/devices/{address}", params=params)
            if response.status_code == 404:
                raise typer.BadParameter(f"Device {address} is not registered.")
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.TransportError as exc:
            self._handle_transport_error(exc)
        return response.json()

    def add_measurement(
        self,
        address: str,
        raw_value: float,
        date: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"address": address, "tempRawC": raw_value}
        if date is not None:
            payload["date"] = date.isoformat()

        attempt = 0
        while True:
            try:
                response = self._client.post("/measurements", json=payload)
            except httpx.TransportError as exc:
                if attempt >= self._config.retries:
                    self._handle_transport_error(exc)
            else:
                if response.status_code == 404:
                    raise typer.BadParameter(f"Device {address} is not registered.")
                if (
                    response.status_code not in _RETRYABLE_STATUS
                    or attempt >= self._config.retries
                ):
                    try:
                        response.raise_for_status()
                    except httpx.HTTPStatusError as exc:
                        self._handle_http_error(exc)
                    return response.json()
            self._sleep(self._config.backoff * (2**attempt))
            attempt += 1

    @staticmethod
    def _handle_transport_error(exc: httpx.TransportError) -> None:
        typer.secho(f"Could not reach the service: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except (ValueError, AttributeError):
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
