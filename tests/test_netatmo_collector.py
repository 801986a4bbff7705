"""
Tests for the refresh-and-cache collector.

Refreshes are driven through a manual executor so each test decides
exactly when a dispatched read runs and completes.
"""

import threading
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor

from prometheus_client import CollectorRegistry, generate_latest
from prometheus_client.parser import text_string_to_metric_families

from netatmo_exporter.client.base import StationClient
from netatmo_exporter.collector.descriptors import ALL_METRICS
from netatmo_exporter.collector.netatmo_collector import NetatmoCollector
from netatmo_exporter.metrics import Measurements, Module, Station

T0 = 1_700_000_000


class _ManualExecutor(Executor):
    def __init__(self):
        self.pending = []
        self.submitted = 0

    def submit(self, fn, *args, **kwargs):
        future = Future()
        self.pending.append((future, fn, args, kwargs))
        self.submitted += 1
        return future

    def run_pending(self):
        pending, self.pending = self.pending, []
        for future, fn, args, kwargs in pending:
            try:
                result = fn(*args, **kwargs)
            except Exception as e:
                future.set_exception(e)
            else:
                future.set_result(result)


class _FakeClient(StationClient):
    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0

    def read(self):
        self.calls += 1
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    def name(self):
        return "fake"


def _make_collector(client, interval=60, threshold=120):
    executor = _ManualExecutor()
    collector = NetatmoCollector(
        client,
        refresh_interval=interval,
        stale_threshold=threshold,
        executor=executor,
        clock=lambda: T0,
    )
    return collector, executor


def _station(name="S", captured_at=T0, modules=(), **values):
    return Station(name, Measurements(captured_at=captured_at, **values), tuple(modules))


def _samples(families):
    out = {}
    for family in families:
        for s in family.samples:
            out[(s.name, s.labels.get("module"), s.labels.get("station"))] = s.value
    return out


def _value(families, name, module=None, station=None):
    return _samples(families).get((name, module, station))


def _sensor_names(families):
    return {s.name for f in families for s in f.samples if s.name.startswith("netatmo_sensor_")}


def test_first_scrape_reports_empty_state_and_dispatches():
    collector, executor = _make_collector(_FakeClient([_station()]))

    families = collector.sample(T0)

    assert _value(families, "netatmo_up") == 0.0
    assert _value(families, "netatmo_last_refresh_time") == 0.0
    assert _value(families, "netatmo_cache_updated_time") == 0.0
    assert _sensor_names(families) == set()
    assert executor.submitted == 1
    assert collector.refresh_in_progress


def test_scrapes_within_interval_dispatch_once():
    client = _FakeClient([_station()], [_station()])
    collector, executor = _make_collector(client, interval=60)

    collector.sample(T0)
    executor.run_pending()
    collector.sample(T0 + 30)
    collector.sample(T0 + 59)

    assert executor.submitted == 1

    collector.sample(T0 + 60)
    assert executor.submitted == 2


def test_no_second_dispatch_while_refresh_in_flight():
    collector, executor = _make_collector(_FakeClient([_station()]), interval=60)

    collector.sample(T0)
    # Long past the interval, but the first refresh hasn't finished
    collector.sample(T0 + 600)
    collector.sample(T0 + 6000)

    assert executor.submitted == 1


def test_concurrent_scrapes_dispatch_exactly_one_refresh():
    collector, executor = _make_collector(_FakeClient([_station()]))
    start = threading.Barrier(16)

    def scrape():
        start.wait()
        collector.sample(T0)

    threads = [threading.Thread(target=scrape) for _ in range(16)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert executor.submitted == 1
    assert len(executor.pending) == 1


def test_scrape_during_refresh_serves_previous_snapshot():
    client = _FakeClient([_station(temperature=20.0)], [_station(temperature=25.0)])
    collector, executor = _make_collector(client, interval=60)

    collector.sample(T0)
    executor.run_pending()

    collector.sample(T0 + 60)  # dispatches the second refresh
    assert collector.refresh_in_progress

    families = collector.sample(T0 + 61)
    assert _value(families, "netatmo_sensor_temperature_celsius", "S", "S") == 20.0
    assert _value(families, "netatmo_cache_updated_time") == T0

    executor.run_pending()
    families = collector.sample(T0 + 62)
    assert _value(families, "netatmo_sensor_temperature_celsius", "S", "S") == 25.0
    assert _value(families, "netatmo_cache_updated_time") == T0 + 60


def test_failed_refresh_keeps_snapshot_and_drops_up():
    client = _FakeClient(
        [_station(temperature=18.0)],
        ConnectionError("api down"),
        [_station(captured_at=T0 + 120, temperature=19.0)],
    )
    collector, executor = _make_collector(client, interval=60, threshold=600)

    collector.sample(T0)
    executor.run_pending()
    assert _value(collector.sample(T0 + 1), "netatmo_up") == 1.0

    collector.sample(T0 + 60)
    executor.run_pending()
    families = collector.sample(T0 + 61)

    assert _value(families, "netatmo_up") == 0.0
    assert _value(families, "netatmo_last_refresh_time") == T0 + 60
    assert _value(families, "netatmo_cache_updated_time") == T0
    assert _value(families, "netatmo_sensor_temperature_celsius", "S", "S") == 18.0
    assert not collector.refresh_in_progress

    collector.sample(T0 + 120)
    executor.run_pending()
    families = collector.sample(T0 + 121)
    assert _value(families, "netatmo_up") == 1.0
    assert _value(families, "netatmo_sensor_temperature_celsius", "S", "S") == 19.0


def test_staleness_boundary():
    threshold = 120
    stale = _station("Old", captured_at=T0 - threshold - 1, temperature=1.0)
    fresh = _station("New", captured_at=T0 - threshold + 1, temperature=2.0)
    collector, executor = _make_collector(_FakeClient([stale, fresh]), threshold=threshold)

    collector.sample(T0)
    executor.run_pending()
    families = collector.sample(T0)

    assert _value(families, "netatmo_sensor_updated", "Old", "Old") is None
    assert _value(families, "netatmo_sensor_temperature_celsius", "Old", "Old") is None
    assert _value(families, "netatmo_sensor_updated", "New", "New") == T0 - threshold + 1
    assert _value(families, "netatmo_sensor_temperature_celsius", "New", "New") == 2.0


def test_station_without_timestamp_emits_no_sensor_metrics():
    station = Station("S", Measurements(temperature=21.0, wifi_signal=60))
    collector, executor = _make_collector(_FakeClient([station]))

    collector.sample(T0)
    executor.run_pending()
    families = collector.sample(T0 + 1)

    assert _sensor_names(families) == set()
    assert _value(families, "netatmo_up") == 1.0
    assert _value(families, "netatmo_last_refresh_time") == T0
    assert _value(families, "netatmo_cache_updated_time") == T0


def test_module_staleness_is_independent_of_station():
    station = _station(
        "S",
        temperature=21.0,
        modules=[
            Module("Outdoor", Measurements(captured_at=T0 - 3600, temperature=4.0)),
            Module("Rain", Measurements(captured_at=T0 - 10, rain=0.4)),
        ],
    )
    collector, executor = _make_collector(_FakeClient([station]), threshold=600)

    collector.sample(T0)
    executor.run_pending()
    families = collector.sample(T0)

    assert _value(families, "netatmo_sensor_temperature_celsius", "S", "S") == 21.0
    assert _value(families, "netatmo_sensor_temperature_celsius", "Outdoor", "S") is None
    assert _value(families, "netatmo_sensor_rain_amount_mm", "Rain", "S") == 0.4


def test_one_updated_sample_per_station_and_module():
    stations = [
        _station("A", modules=[Module("A1", Measurements(captured_at=T0)),
                               Module("A2", Measurements(captured_at=T0))]),
        _station("B", modules=[Module("B1", Measurements(captured_at=T0))]),
        _station("C"),
    ]
    collector, executor = _make_collector(_FakeClient(stations), threshold=3600)

    collector.sample(T0)
    executor.run_pending()
    families = collector.sample(T0)

    updated = [
        (s.labels["module"], s.labels["station"])
        for f in families for s in f.samples
        if s.name == "netatmo_sensor_updated"
    ]
    assert len(updated) == 3 + 3
    assert len(set(updated)) == len(updated)
    assert ("A", "A") in updated
    assert ("B1", "B") in updated


def test_module_named_after_its_station_is_not_exported_twice():
    station = _station("Home", temperature=21.0, modules=[
        Module("Home", Measurements(captured_at=T0, temperature=5.0)),
        Module("Outdoor", Measurements(captured_at=T0, temperature=4.0)),
    ])
    collector, executor = _make_collector(_FakeClient([station]), threshold=3600)

    collector.sample(T0)
    executor.run_pending()
    registry = CollectorRegistry()
    registry.register(collector)
    text = generate_latest(registry).decode()

    temps = [
        line for line in text.splitlines()
        if line.startswith("netatmo_sensor_temperature_celsius{")
    ]
    assert temps == [
        'netatmo_sensor_temperature_celsius{module="Home",station="Home"} 21.0',
        'netatmo_sensor_temperature_celsius{module="Outdoor",station="Home"} 4.0',
    ]


def test_stations_sharing_a_name_keep_the_first():
    stations = [_station("Home", temperature=21.0), _station("Home", temperature=18.0)]
    collector, executor = _make_collector(_FakeClient(stations), threshold=3600)

    collector.sample(T0)
    executor.run_pending()
    families = collector.sample(T0)

    temps = [
        s.value for f in families for s in f.samples
        if s.name == "netatmo_sensor_temperature_celsius"
    ]
    assert temps == [21.0]


def test_absent_fields_are_skipped():
    station = _station(temperature=21.0, humidity=45.0)
    collector, executor = _make_collector(_FakeClient([station]))

    collector.sample(T0)
    executor.run_pending()
    families = collector.sample(T0)

    assert _sensor_names(families) == {
        "netatmo_sensor_updated",
        "netatmo_sensor_temperature_celsius",
        "netatmo_sensor_humidity_percent",
    }


def test_zero_reading_is_emitted():
    station = _station(rain=0.0)
    collector, executor = _make_collector(_FakeClient([station]))

    collector.sample(T0)
    executor.run_pending()

    assert _value(collector.sample(T0), "netatmo_sensor_rain_amount_mm", "S", "S") == 0.0


def test_scenario_interval_60_threshold_120():
    station = _station("S", captured_at=T0, temperature=21.5)
    collector, executor = _make_collector(_FakeClient([station], [station]), interval=60, threshold=120)

    collector.sample(T0)
    executor.run_pending()

    families = collector.sample(T0 + 10)
    assert _value(families, "netatmo_up") == 1.0
    assert _value(families, "netatmo_sensor_temperature_celsius", "S", "S") == 21.5

    # This scrape starts a new refresh, but it hasn't completed yet
    families = collector.sample(T0 + 130)
    assert _value(families, "netatmo_sensor_temperature_celsius", "S", "S") is None
    assert _value(families, "netatmo_up") == 1.0


def test_describe_lists_every_metric():
    collector, _ = _make_collector(_FakeClient())

    described = collector.describe()

    assert [f.name for f in described] == [d.name for d in ALL_METRICS]
    assert len(described) == 15
    assert all(not f.samples for f in described)


def test_registering_does_not_trigger_refresh():
    collector, executor = _make_collector(_FakeClient())
    registry = CollectorRegistry()
    registry.register(collector)

    assert executor.submitted == 0


def test_exposition_text():
    collector, executor = _make_collector(_FakeClient([_station("Home", temperature=21.5)]))
    registry = CollectorRegistry()
    registry.register(collector)

    generate_latest(registry)
    executor.run_pending()
    text = generate_latest(registry).decode()

    assert "netatmo_up 1.0" in text
    assert 'netatmo_sensor_temperature_celsius{module="Home",station="Home"} 21.5' in text

    parsed = {
        (s.name, s.labels.get("module")): s.value
        for f in text_string_to_metric_families(text) for s in f.samples
    }
    assert parsed[("netatmo_cache_updated_time", None)] == T0
    assert parsed[("netatmo_sensor_updated", "Home")] == T0
    assert "# TYPE netatmo_sensor_updated gauge" in text


def test_rejected_dispatch_does_not_stick():
    executor = ThreadPoolExecutor(max_workers=1)
    collector = NetatmoCollector(_FakeClient(), 60, 120, executor=executor)
    executor.shutdown()

    families = collector.sample(T0)
    assert not collector.refresh_in_progress
    assert _value(families, "netatmo_up") == 0.0
    assert _value(collector.sample(T0 + 1), "netatmo_up") == 0.0


def test_scrape_does_not_wait_for_slow_upstream():
    release = threading.Event()

    class _SlowClient(StationClient):
        def read(self):
            release.wait(5)
            return [_station()]

        def name(self):
            return "slow"

    collector = NetatmoCollector(_SlowClient(), refresh_interval=60, stale_threshold=120)
    try:
        t0 = time.monotonic()
        collector.sample(T0)
        collector.sample(T0 + 1)
        assert time.monotonic() - t0 < 1.0
        assert collector.refresh_in_progress

        release.set()
        deadline = time.monotonic() + 5
        while collector.refresh_in_progress and time.monotonic() < deadline:
            time.sleep(0.01)

        assert not collector.refresh_in_progress
        assert collector.snapshot.captured_at == T0
    finally:
        release.set()
        collector.close()
