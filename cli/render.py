from __future__ import annotations

from typing import Any, Dict, Iterable

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def _format_measurement(measurement: Dict[str, Any]) -> str:
    return (
        f"{measurement.get('date')}  "
        f"{measurement.get('tempC')} C / {measurement.get('tempF')} F "
        f"(raw {measurement.get('tempRawC')})"
    )


def render_device(payload: Dict[str, Any]) -> None:
    echo_heading("Device")
    echo_key_values(
        [
            ("address", payload.get("address")),
            ("name", payload.get("name")),
            ("description", payload.get("description")),
        ]
    )

    typer.echo()
    echo_heading("Current Measurement")
    current = payload.get("currentMeasurement")
    if current:
        typer.echo(_format_measurement(current))
    else:
        typer.echo("No measurement available.")

    measurements = payload.get("measurements") or []
    typer.echo()
    echo_heading("Measurements")
    if measurements:
        for measurement in measurements:
            typer.echo(f"  - {_format_measurement(measurement)}")
    else:
        typer.echo("No measurements recorded.")

    errors = payload.get("errors") or []
    if errors:
        typer.echo()
        echo_heading("Errors")
        for error in errors:
            typer.secho(
                f"  - {error.get('field')}: {error.get('reason')}",
                fg=typer.colors.YELLOW,
            )


def render_measurement(payload: Dict[str, Any]) -> None:
    echo_heading("Stored Measurement")
    echo_key_values(
        [
            ("address", payload.get("address")),
            ("date", payload.get("date")),
            ("tempC", payload.get("tempC")),
            ("tempF", payload.get("tempF")),
            ("tempRawC", payload.get("tempRawC")),
        ]
    )
