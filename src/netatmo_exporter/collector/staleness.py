"""
Staleness policy and the per-sensor metric mapping.

Staleness is judged per station/module, not for the snapshot as a whole:
a module's radio can drop out while its base station keeps reporting.
A stale or empty sensor is left out of the scrape rather than failing it.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from netatmo_exporter.collector.descriptors import SENSOR_METRICS, SENSOR_UPDATED, MetricDesc
from netatmo_exporter.metrics import Measurements

log = logging.getLogger(__name__)

Observation = Tuple[MetricDesc, float]


def is_fresh(captured_at: Optional[float], now: float, threshold: float) -> bool:
    """A reading is usable when it exists and is no older than threshold."""
    if captured_at is None:
        return False
    return now - captured_at <= threshold


def up_value(completed: int, last_error: Optional[BaseException]) -> float:
    """1.0 once a refresh has completed and the latest one succeeded."""
    if completed == 0 or last_error is not None:
        return 0.0
    return 1.0


def entity_observations(
    measurements: Measurements,
    now: float,
    threshold: float,
    module_name: str = "",
    station_name: str = "",
) -> List[Observation]:
    """Values to emit for one station or module; empty when it must be suppressed."""
    if measurements.captured_at is None:
        log.debug("No data available for %s (%s)", module_name, station_name)
        return []

    if not is_fresh(measurements.captured_at, now, threshold):
        log.debug(
            "Data is stale for %s: %.0fs > %.0fs",
            module_name, now - measurements.captured_at, threshold,
        )
        return []

    observations: List[Observation] = [(SENSOR_UPDATED, float(measurements.captured_at))]
    for desc in SENSOR_METRICS:
        value = getattr(measurements, desc.field)
        if value is not None:
            observations.append((desc, float(value)))
    return observations
