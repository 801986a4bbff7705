"""
Metric identities the exporter can emit.

These are static: describe() hands them to the registry up front, and
the collector emits a subset of them on every scrape depending on which
sensors exist and which readings are fresh.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

PREFIX = "netatmo_"
SENSOR_PREFIX = PREFIX + "sensor_"

# Every sensor metric carries these, in this order
SENSOR_LABELS = ("module", "station")


@dataclass(frozen=True)
class MetricDesc:
    name: str
    help_text: str
    labels: Tuple[str, ...] = ()
    field: Optional[str] = None  # Measurements attribute the value comes from


UP = MetricDesc(
    PREFIX + "up",
    "Zero if there was an error during the last refresh try.",
)
LAST_REFRESH_TIME = MetricDesc(
    PREFIX + "last_refresh_time",
    "Contains the time of the last refresh try, successful or not.",
)
CACHE_UPDATED_TIME = MetricDesc(
    PREFIX + "cache_updated_time",
    "Contains the time of the cached data.",
)

SENSOR_UPDATED = MetricDesc(
    SENSOR_PREFIX + "updated",
    "Timestamp of last update",
    SENSOR_LABELS,
    "captured_at",
)

# One gauge per optional reading, emitted only when the reading is present
SENSOR_METRICS = (
    MetricDesc(SENSOR_PREFIX + "temperature_celsius",
               "Temperature measurement in celsius", SENSOR_LABELS, "temperature"),
    MetricDesc(SENSOR_PREFIX + "humidity_percent",
               "Relative humidity measurement in percent", SENSOR_LABELS, "humidity"),
    MetricDesc(SENSOR_PREFIX + "co2_ppm",
               "Carbondioxide measurement in parts per million", SENSOR_LABELS, "co2"),
    MetricDesc(SENSOR_PREFIX + "noise_db",
               "Noise measurement in decibels", SENSOR_LABELS, "noise"),
    MetricDesc(SENSOR_PREFIX + "pressure_mb",
               "Atmospheric pressure measurement in millibar", SENSOR_LABELS, "pressure"),
    MetricDesc(SENSOR_PREFIX + "wind_strength_kph",
               "Wind strength in kilometers per hour", SENSOR_LABELS, "wind_strength"),
    MetricDesc(SENSOR_PREFIX + "wind_direction_degrees",
               "Wind direction in degrees", SENSOR_LABELS, "wind_direction"),
    MetricDesc(SENSOR_PREFIX + "rain_amount_mm",
               "Rain amount in millimeters", SENSOR_LABELS, "rain"),
    MetricDesc(SENSOR_PREFIX + "battery_percent",
               "Battery remaining life (10: low)", SENSOR_LABELS, "battery_percent"),
    MetricDesc(SENSOR_PREFIX + "wifi_signal_strength",
               "Wifi signal strength (86: bad, 71: avg, 56: good)", SENSOR_LABELS, "wifi_signal"),
    MetricDesc(SENSOR_PREFIX + "rf_signal_strength",
               "RF signal strength (90: lowest, 60: highest)", SENSOR_LABELS, "rf_signal"),
)

ALL_METRICS = (UP, LAST_REFRESH_TIME, CACHE_UPDATED_TIME, SENSOR_UPDATED) + SENSOR_METRICS
