"""
Refresh-and-cache collector, registered with prometheus_client.

A scrape never waits for Netatmo. It serves whatever snapshot is
currently published and, when the refresh interval has passed, kicks off
a background read. The read's result is applied from the future's
done-callback, which is the only place the snapshot gets replaced.

At most one refresh is in flight: the scrape that decides to refresh
marks it in progress under the same lock it reads the state with.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import CancelledError, Executor, Future, ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from prometheus_client.core import GaugeMetricFamily, Metric

from netatmo_exporter.client.base import StationClient
from netatmo_exporter.collector.descriptors import (
    ALL_METRICS,
    CACHE_UPDATED_TIME,
    LAST_REFRESH_TIME,
    SENSOR_METRICS,
    SENSOR_UPDATED,
    UP,
    MetricDesc,
)
from netatmo_exporter.collector.refresh import RefreshState, should_refresh
from netatmo_exporter.collector.staleness import entity_observations, up_value
from netatmo_exporter.metrics import Snapshot, Station

log = logging.getLogger(__name__)

# Emission order for the per-sensor families
_SENSOR_ORDER = (SENSOR_UPDATED,) + SENSOR_METRICS


def _unix(t: float) -> float:
    return float(int(t)) if t else 0.0


def _family(desc: MetricDesc, value: Optional[float] = None) -> GaugeMetricFamily:
    if desc.labels:
        return GaugeMetricFamily(desc.name, desc.help_text, labels=list(desc.labels))
    return GaugeMetricFamily(desc.name, desc.help_text, value=value)


class NetatmoCollector:
    """Custom prometheus_client collector serving the cached snapshot.

    refresh_interval and stale_threshold are in seconds and must be
    positive; validating them is the caller's job.
    """

    def __init__(
        self,
        client: StationClient,
        refresh_interval: float,
        stale_threshold: float,
        executor: Optional[Executor] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._client = client
        self.refresh_interval = float(refresh_interval)
        self.stale_threshold = float(stale_threshold)
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="netatmo-refresh"
        )
        self._clock = clock
        self._lock = threading.Lock()
        self._state = RefreshState()

    # -- prometheus_client collector protocol --

    def describe(self) -> List[Metric]:
        """Every metric this collector can emit, without samples."""
        return [_family(desc) for desc in ALL_METRICS]

    def collect(self) -> List[Metric]:
        return self.sample(self._clock())

    # -- scrape path --

    def sample(self, now: float) -> List[Metric]:
        """Build one scrape's worth of metric families. Never blocks on upstream I/O."""
        with self._lock:
            state = self._state
            snapshot = state.snapshot
            last_error = state.last_error
            last_attempt = state.last_attempt
            completed = state.completed

            dispatch = should_refresh(now, last_attempt, self.refresh_interval, state.in_progress)
            if dispatch:
                log.debug(
                    "Refresh interval elapsed: %.0fs >= %.0fs",
                    now - last_attempt, self.refresh_interval,
                )
                state.mark_dispatched(now)

        if dispatch:
            self._dispatch(now)

        families: List[Metric] = [
            _family(UP, up_value(completed, last_error)),
            _family(LAST_REFRESH_TIME, _unix(last_attempt)),
            _family(CACHE_UPDATED_TIME, _unix(snapshot.captured_at)),
        ]
        families.extend(self._sensor_families(snapshot, now))
        return families

    def _sensor_families(self, snapshot: Snapshot, now: float) -> List[Metric]:
        by_name: Dict[str, GaugeMetricFamily] = {}
        seen: Set[Tuple[str, str]] = set()

        for station in snapshot.stations:
            for module_name, measurements in station.sensors():
                # First entity wins a (module, station) label pair
                labels = (module_name, station.name)
                if labels in seen:
                    log.warning(
                        "Skipping module %r of station %r: label pair already exported",
                        module_name, station.name,
                    )
                    continue
                seen.add(labels)

                observations = entity_observations(
                    measurements, now, self.stale_threshold, module_name, station.name,
                )
                for desc, value in observations:
                    family = by_name.get(desc.name)
                    if family is None:
                        family = by_name[desc.name] = _family(desc)
                    family.add_metric([module_name, station.name], value)

        return [by_name[d.name] for d in _SENSOR_ORDER if d.name in by_name]

    # -- refresh path --

    def _dispatch(self, now: float):
        try:
            future = self._executor.submit(self._client.read)
        except RuntimeError as e:
            # Executor already shut down; don't leave the refresh marked in flight
            self.complete_refresh(now, error=e)
            return
        future.add_done_callback(lambda f: self._on_refresh_done(now, f))

    def _on_refresh_done(self, now: float, future: Future):
        if future.cancelled():
            self.complete_refresh(now, error=CancelledError("refresh cancelled"))
            return
        error = future.exception()
        if error is not None:
            self.complete_refresh(now, error=error)
        else:
            self.complete_refresh(now, stations=future.result())

    def complete_refresh(
        self,
        now: float,
        stations: Optional[Sequence[Station]] = None,
        error: Optional[BaseException] = None,
    ):
        """Apply a finished refresh. The only writer of the published snapshot."""
        if error is not None:
            log.error("Error during refresh: %s", error)
            with self._lock:
                self._state.apply_failure(error)
            return

        snapshot = Snapshot(captured_at=now, stations=tuple(stations or ()))
        with self._lock:
            self._state.apply_success(snapshot)
        log.debug(
            "Refreshed %d station(s), %d sensor(s)",
            len(snapshot.stations), snapshot.sensor_count(),
        )

    @property
    def refresh_in_progress(self) -> bool:
        with self._lock:
            return self._state.in_progress

    @property
    def snapshot(self) -> Snapshot:
        with self._lock:
            return self._state.snapshot

    def close(self):
        if self._owns_executor:
            self._executor.shutdown(wait=False)
