"""Terminal view of the current readings using Rich. One row per station/module."""

from __future__ import annotations

import time
from typing import Optional

from rich.console import Console
from rich.table import Table
from rich.text import Text

from netatmo_exporter import __version__
from netatmo_exporter.collector.staleness import is_fresh
from netatmo_exporter.metrics import Measurements, Snapshot


def _color_for_battery(value: float) -> str:
    if value > 50:
        return "green"
    elif value > 20:
        return "yellow"
    return "red"


def _format_age(seconds: float) -> str:
    seconds = max(0, int(seconds))
    if seconds < 120:
        return f"{seconds}s"
    if seconds < 7200:
        return f"{seconds // 60}m"
    return f"{seconds // 3600}h"


def _cell(value: Optional[float], fmt: str = "{:.1f}") -> str:
    return fmt.format(value) if value is not None else "[dim]-[/dim]"


def _status(m: Measurements, now: float, stale_threshold: float) -> Text:
    if m.captured_at is None:
        return Text("NO DATA", style="dim")
    if not is_fresh(m.captured_at, now, stale_threshold):
        return Text("STALE", style="bold red")
    return Text("OK", style="bold green")


def build_table(snapshot: Snapshot, stale_threshold: float, now: Optional[float] = None) -> Table:
    """Rows for every sensor; stale ones are still shown, marked STALE."""
    now = time.time() if now is None else now

    table = Table(show_header=True, header_style="bold cyan", expand=True)
    table.add_column("Station", style="dim")
    table.add_column("Module")
    table.add_column("Status", justify="center")
    table.add_column("Age", justify="right")
    table.add_column("Temp C", justify="right")
    table.add_column("Hum %", justify="right")
    table.add_column("CO2", justify="right")
    table.add_column("Noise", justify="right")
    table.add_column("Press mb", justify="right")
    table.add_column("Wind", justify="right")
    table.add_column("Rain mm", justify="right")
    table.add_column("Battery", justify="right")
    table.add_column("Signal", justify="right")

    for station in snapshot.stations:
        for module_name, m in station.sensors():
            age = _format_age(now - m.captured_at) if m.captured_at is not None else "-"

            wind = "[dim]-[/dim]"
            if m.wind_strength is not None:
                wind = f"{m.wind_strength:.0f} kph"
                if m.wind_direction is not None:
                    wind += f" @ {m.wind_direction:.0f}"

            battery = "[dim]-[/dim]"
            if m.battery_percent is not None:
                color = _color_for_battery(m.battery_percent)
                battery = f"[{color}]{m.battery_percent:.0f}%[/{color}]"

            signal = m.wifi_signal if m.wifi_signal is not None else m.rf_signal

            table.add_row(
                station.name,
                module_name,
                _status(m, now, stale_threshold),
                age,
                _cell(m.temperature),
                _cell(m.humidity, "{:.0f}"),
                _cell(m.co2, "{:.0f}"),
                _cell(m.noise, "{:.0f}"),
                _cell(m.pressure),
                wind,
                _cell(m.rain),
                battery,
                _cell(signal, "{:.0f}"),
            )

    return table


def print_readings(
    snapshot: Snapshot,
    source_name: str,
    stale_threshold: float,
    console: Optional[Console] = None,
):
    console = console or Console()
    header = Text(f"  netatmo-exporter v{__version__}  |  {source_name}", style="bold white on blue")
    console.print(header)

    if not snapshot.stations:
        console.print("\n[dim]No stations on this account.[/dim]\n")
        return

    console.print(build_table(snapshot, stale_threshold))
    console.print()
