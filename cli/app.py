from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_device, render_measurement
from cli.simulator import DEFAULT_SENSORS, SimulatedSensor, run_simulation


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Query and feed the temperature telemetry service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        typer.secho("CLI state is uninitialized.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return state


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    candidate = value.strip()
    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise typer.BadParameter(f"Invalid ISO-8601 date {value!r}.") from exc


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Telemetry API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    retries: Optional[int] = typer.Option(
        None,
        "--retries",
        help="How many times to retry a write while the store is unavailable.",
    ),
    backoff: Optional[float] = typer.Option(
        None,
        "--backoff",
        help="Initial delay in seconds between retries; doubles on each attempt.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, retries=retries, backoff=backoff)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("device")
def device_command(
    ctx: typer.Context,
    address: str = typer.Argument(..., help="Hardware address of the sensor."),
    count: Optional[int] = typer.Option(
        None,
        "--count",
        "-n",
        min=1,
        help="Number of recent measurements to show.",
    ),
) -> None:
    """Show a device with its current measurement and recent history."""
    state = _get_state(ctx)
    payload = state.client.get_device(address, count)
    render_device(payload)


@app.command("ingest")
def ingest_command(
    ctx: typer.Context,
    address: str = typer.Argument(..., help="Hardware address of the sensor."),
    raw_value: float = typer.Argument(..., help="Raw sensor reading."),
    date: Optional[str] = typer.Option(
        None,
        "--date",
        help="ISO-8601 time of observation (defaults to now).",
    ),
) -> None:
    """Submit a single measurement."""
    state = _get_state(ctx)
    payload = state.client.add_measurement(address, raw_value, _parse_date(date))
    typer.secho("Measurement stored.", fg=typer.colors.GREEN)
    render_measurement(payload)


@app.command("simulate")
def simulate_command(
    ctx: typer.Context,
    sensors: Optional[List[str]] = typer.Option(
        None,
        "--sensor",
        "-s",
        help="Sine-wave sensor as ADDRESS:MIN:MAX:PERIOD; repeat for several sensors.",
    ),
    interval: float = typer.Option(2.0, "--interval", min=0.0, help="Seconds between readings."),
    iterations: int = typer.Option(
        0,
        "--iterations",
        min=0,
        help="Readings per sensor before stopping; 0 runs until interrupted.",
    ),
    stagger: float = typer.Option(
        1.0,
        "--stagger",
        min=0.0,
        help="Seconds to wait between starting each sensor.",
    ),
) -> None:
    """Feed synthetic sine-wave readings for one or more sensors."""
    state = _get_state(ctx)
    simulated = [SimulatedSensor.parse(spec) for spec in (sensors or DEFAULT_SENSORS)]
    typer.echo(
        f"Simulating {len(simulated)} sensor(s) against {state.config.base_url} "
        f"every {interval}s ..."
    )
    results = run_simulation(
        state.client, simulated, interval=interval, iterations=iterations, stagger=stagger
    )
    for address, accepted in results.items():
        typer.echo(f"{address}: {accepted} reading(s) accepted")
