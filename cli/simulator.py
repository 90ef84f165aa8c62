"""Synthetic sensors that submit sine-wave readings through the API."""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

import typer

DEFAULT_SENSORS = (
    "f4d55889b1d6:16.667:20.0:70",
    "d0f7083ca3b1:24.88:30.0:120",
)


class MeasurementSink(Protocol):
    def add_measurement(self, address: str, raw_value: float) -> dict: ...


@dataclass(frozen=True)
class SimulatedSensor:
    """A sensor whose reading follows a sine wave between ``trough`` and ``crest``.

    ``period`` is the real-world duration, in seconds, of one full wave.
    """

    address: str
    trough: float
    crest: float
    period: float

    def value_at(self, elapsed: float) -> float:
        sine = (math.sin(elapsed * 2.0 * math.pi / self.period) + 1.0) / 2.0
        return sine * (self.crest - self.trough) + self.trough

    @classmethod
    def parse(cls, spec: str) -> "SimulatedSensor":
        """Build a sensor from ``ADDRESS:MIN:MAX:PERIOD``."""
        parts = spec.split(":")
        if len(parts) != 4 or not parts[0]:
            raise typer.BadParameter(f"Expected ADDRESS:MIN:MAX:PERIOD, got {spec!r}.")
        try:
            trough, crest, period = (float(part) for part in parts[1:])
        except ValueError as exc:
            raise typer.BadParameter(f"Non-numeric sine parameters in {spec!r}.") from exc
        if period <= 0:
            raise typer.BadParameter(f"Period must be positive in {spec!r}.")
        if crest < trough:
            raise typer.BadParameter(f"MAX must not be below MIN in {spec!r}.")
        return cls(address=parts[0], trough=trough, crest=crest, period=period)


def run_sensor(
    sink: MeasurementSink,
    sensor: SimulatedSensor,
    interval: float,
    iterations: int = 0,
    stop: Optional[threading.Event] = None,
    clock: Callable[[], float] = time.monotonic,
) -> int:
    """Submit readings until ``iterations`` are sent (0 means forever) or ``stop`` is set.

    Returns the number of readings the service accepted.
    """
    stop = stop or threading.Event()
    start = clock()
    sent = 0
    accepted = 0
    while not stop.is_set() and (iterations <= 0 or sent < iterations):
        value = sensor.value_at(clock() - start)
        sent += 1
        try:
            sink.add_measurement(sensor.address, value)
        except typer.BadParameter as exc:
            typer.secho(f"{sensor.address}: {exc.message}", fg=typer.colors.RED, err=True)
            break
        except typer.Exit:
            # The client already reported the failure; keep producing.
            pass
        else:
            accepted += 1
            typer.echo(f"{sensor.address}: {value:.3f}")
        if iterations <= 0 or sent < iterations:
            stop.wait(interval)
    return accepted


def run_simulation(
    sink: MeasurementSink,
    sensors: list[SimulatedSensor],
    interval: float,
    iterations: int = 0,
    stagger: float = 1.0,
    stop: Optional[threading.Event] = None,
) -> dict[str, int]:
    """Run one producer thread per sensor and wait for all of them."""
    stop = stop or threading.Event()
    results: dict[str, int] = {}

    def _worker(sensor: SimulatedSensor) -> None:
        results[sensor.address] = run_sensor(sink, sensor, interval, iterations, stop)

    threads = []
    for position, sensor in enumerate(sensors):
        if position and stagger > 0:
            stop.wait(stagger)
        thread = threading.Thread(target=_worker, args=(sensor,), name=f"sensor-{sensor.address}")
        thread.start()
        threads.append(thread)

    try:
        for thread in threads:
            while thread.is_alive():
                thread.join(timeout=0.5)
    except KeyboardInterrupt:
        stop.set()
        for thread in threads:
            thread.join()
    return results
