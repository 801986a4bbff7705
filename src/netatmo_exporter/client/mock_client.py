"""
Mock Netatmo account.

Produces fake but plausible readings so we can run the exporter without
API credentials. One station ("Home") with the usual set of modules:
an outdoor module, a rain gauge, an anemometer and an extra indoor module.
"""

from __future__ import annotations

import logging
import math
import random
import time
from dataclasses import replace
from typing import Callable, List, Optional

from netatmo_exporter.client.base import StationClient
from netatmo_exporter.metrics import Measurements, Module, Station

log = logging.getLogger(__name__)


class MockUpstreamError(Exception):
    pass


class MockStationClient(StationClient):
    """Seeded generator behind the StationClient interface.

    failure_rate makes a share of reads raise, to watch `up` drop.
    quiet_module stops updating one module's timestamp, so it goes stale.
    """

    def __init__(
        self,
        seed: int = 42,
        station_name: str = "Home",
        failure_rate: float = 0.0,
        quiet_module: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._rng = random.Random(seed)
        self._station_name = station_name
        self._failure_rate = failure_rate
        self._quiet_module = quiet_module
        self._clock = clock
        self._tick = 0
        self._rain_total = 0.0
        self._quiet_since: Optional[int] = None

    def read(self) -> List[Station]:
        """Generate one reading, advancing the simulation clock."""
        self._tick += 1
        if self._failure_rate and self._rng.random() < self._failure_rate:
            raise MockUpstreamError("simulated upstream failure")

        now = int(self._clock())
        t = self._tick

        # Daily-ish temperature swing, indoors damped
        outdoor_temp = 12 + 8 * math.sin(t * 0.05) + self._rng.gauss(0, 0.3)
        indoor_temp = 21 + 1.5 * math.sin(t * 0.05) + self._rng.gauss(0, 0.1)

        # Netatmo posts measurements every ~5 minutes, so readings lag a bit
        def lagged() -> int:
            return now - self._rng.randint(0, 300)

        if self._rng.random() > 0.85:
            self._rain_total += round(self._rng.uniform(0.1, 1.2), 1)

        base = Measurements(
            captured_at=lagged(),
            temperature=round(indoor_temp, 1),
            humidity=float(self._rng.randint(38, 55)),
            co2=float(max(400, int(650 + 250 * math.sin(t * 0.2) + self._rng.gauss(0, 40)))),
            noise=float(self._rng.randint(32, 48)),
            pressure=round(1013 + 6 * math.sin(t * 0.01) + self._rng.gauss(0, 0.4), 1),
            wifi_signal=float(self._rng.randint(50, 70)),
        )

        modules = [
            Module("Outdoor", Measurements(
                captured_at=lagged(),
                temperature=round(outdoor_temp, 1),
                humidity=float(self._rng.randint(55, 95)),
                battery_percent=float(self._rng.randint(60, 70)),
                rf_signal=float(self._rng.randint(65, 80)),
            )),
            Module("Rain gauge", Measurements(
                captured_at=lagged(),
                rain=round(self._rain_total, 1),
                battery_percent=float(self._rng.randint(80, 90)),
                rf_signal=float(self._rng.randint(70, 85)),
            )),
            Module("Anemometer", Measurements(
                captured_at=lagged(),
                wind_strength=float(max(0, int(self._rng.gauss(12, 6)))),
                wind_direction=float(self._rng.randrange(0, 360, 5)),
                battery_percent=float(self._rng.randint(40, 50)),
                rf_signal=float(self._rng.randint(70, 88)),
            )),
            Module("Bedroom", Measurements(
                captured_at=lagged(),
                temperature=round(indoor_temp - 1.5, 1),
                humidity=float(self._rng.randint(40, 60)),
                co2=float(self._rng.randint(450, 1100)),
                battery_percent=float(self._rng.randint(20, 30)),
                rf_signal=float(self._rng.randint(60, 75)),
            )),
        ]

        if self._quiet_module:
            modules = [self._silence(m) for m in modules]

        return [Station(self._station_name, base, tuple(modules))]

    def _silence(self, module: Module) -> Module:
        if module.name != self._quiet_module:
            return module
        if self._quiet_since is None:
            self._quiet_since = module.measurements.captured_at
            log.debug("Module %s stops reporting at %s", module.name, self._quiet_since)
        return Module(module.name, replace(module.measurements, captured_at=self._quiet_since))

    def name(self) -> str:
        return f"Mock Netatmo ({self._station_name})"
