"""
Data model for station readings.

A Snapshot is what one successful refresh produced: every station on the
account, each with its linked modules. Snapshots are frozen -- a refresh
builds a new one and swaps it in, readers never see one change under them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, Optional, Tuple


@dataclass(frozen=True)
class Measurements:
    """The latest values reported by one station or module.

    Every field is optional. None means the device has no such sensor
    (or has not reported yet), which is not the same thing as a zero.
    """

    captured_at: Optional[int] = None  # unix seconds, from dashboard_data.time_utc

    temperature: Optional[float] = None
    humidity: Optional[float] = None
    co2: Optional[float] = None
    noise: Optional[float] = None
    pressure: Optional[float] = None
    wind_strength: Optional[float] = None
    wind_direction: Optional[float] = None
    rain: Optional[float] = None

    # Device health, not weather
    battery_percent: Optional[float] = None
    wifi_signal: Optional[float] = None
    rf_signal: Optional[float] = None


@dataclass(frozen=True)
class Module:
    name: str
    measurements: Measurements = field(default_factory=Measurements)


@dataclass(frozen=True)
class Station:
    name: str
    measurements: Measurements = field(default_factory=Measurements)
    modules: Tuple[Module, ...] = ()

    def sensors(self) -> Iterator[Tuple[str, Measurements]]:
        """Yield (module label, measurements) for the station and each module.

        The station is its own sensor and is labelled with its own name.
        """
        yield self.name, self.measurements
        for module in self.modules:
            yield module.name, module.measurements


@dataclass(frozen=True)
class Snapshot:
    """All stations as of one refresh. captured_at is 0 for the empty snapshot."""

    captured_at: float
    stations: Tuple[Station, ...] = ()

    def sensor_count(self) -> int:
        return sum(1 + len(s.modules) for s in self.stations)


EMPTY_SNAPSHOT = Snapshot(captured_at=0.0)
