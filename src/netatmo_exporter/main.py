"""
netatmo-exporter entry point.

Usage:
    netatmo-exporter --mock                      Serve simulated stations
    netatmo-exporter --client-id ... --username ...   Serve a real account
    netatmo-exporter show --mock                 Print current readings once
"""

from __future__ import annotations

import logging
import time

import click
from prometheus_client import CollectorRegistry

from netatmo_exporter import __version__
from netatmo_exporter.client.mock_client import MockStationClient
from netatmo_exporter.client.netatmo_api import Credentials, NetatmoClient
from netatmo_exporter.collector.netatmo_collector import NetatmoCollector
from netatmo_exporter.config import (
    DEFAULT_ADDR,
    DEFAULT_AGE_STALE,
    DEFAULT_REFRESH_INTERVAL,
    DURATION,
    LISTEN_ADDRESS,
)
from netatmo_exporter.dashboard.terminal import print_readings
from netatmo_exporter.metrics import Snapshot
from netatmo_exporter.server import run_server

log = logging.getLogger("netatmo_exporter")

LOG_LEVELS = ["debug", "info", "warning", "error"]


def _make_client(obj: dict):
    if obj["mock"]:
        return MockStationClient(
            failure_rate=obj["mock_failure_rate"],
            quiet_module=obj["mock_quiet_module"],
        )

    missing = [opt for opt, key in (
        ("--client-id", "client_id"),
        ("--client-secret", "client_secret"),
        ("--username", "username"),
        ("--password", "password"),
    ) if not obj[key]]
    if missing:
        click.echo(f"Missing Netatmo credentials: {', '.join(missing)} (or use --mock)")
        raise SystemExit(1)

    return NetatmoClient(Credentials(
        client_id=obj["client_id"],
        client_secret=obj["client_secret"],
        username=obj["username"],
        password=obj["password"],
    ))


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="netatmo-exporter")
@click.option("--addr", default=DEFAULT_ADDR, type=LISTEN_ADDRESS, envvar="NETATMO_EXPORTER_ADDR",
              show_default=True, help="Address to listen on")
@click.option("--refresh-interval", default=DEFAULT_REFRESH_INTERVAL, type=DURATION,
              envvar="NETATMO_REFRESH_INTERVAL", show_default=True,
              help="Minimum time between upstream refreshes")
@click.option("--age-stale", default=DEFAULT_AGE_STALE, type=DURATION, envvar="NETATMO_AGE_STALE",
              show_default=True, help="Readings older than this are not exported")
@click.option("--log-level", default="info", type=click.Choice(LOG_LEVELS, case_sensitive=False),
              envvar="NETATMO_LOG_LEVEL", show_default=True, help="Logging verbosity")
@click.option("--client-id", default=None, envvar="NETATMO_CLIENT_ID", help="Netatmo app client ID")
@click.option("--client-secret", default=None, envvar="NETATMO_CLIENT_SECRET",
              help="Netatmo app client secret")
@click.option("--username", default=None, envvar="NETATMO_CLIENT_USERNAME", help="Netatmo account username")
@click.option("--password", default=None, envvar="NETATMO_CLIENT_PASSWORD", help="Netatmo account password")
@click.option("--mock", is_flag=True, default=False, help="Use simulated stations instead of the API")
@click.option("--mock-failure-rate", default=0.0, type=click.FloatRange(0.0, 1.0), show_default=True,
              help="Share of simulated reads that fail (with --mock)")
@click.option("--mock-quiet-module", default=None,
              help="Simulated module that stops reporting and goes stale (with --mock)")
@click.pass_context
def cli(ctx, addr, refresh_interval: float, age_stale: float, log_level: str,
        client_id: str, client_secret: str, username: str, password: str, mock: bool,
        mock_failure_rate: float, mock_quiet_module: str):
    """Netatmo weather station exporter for Prometheus."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    ctx.ensure_object(dict)
    ctx.obj["addr"] = addr
    ctx.obj["refresh_interval"] = refresh_interval
    ctx.obj["age_stale"] = age_stale
    ctx.obj["client_id"] = client_id
    ctx.obj["client_secret"] = client_secret
    ctx.obj["username"] = username
    ctx.obj["password"] = password
    ctx.obj["mock"] = mock
    ctx.obj["mock_failure_rate"] = mock_failure_rate
    ctx.obj["mock_quiet_module"] = mock_quiet_module

    # No subcommand: run the exporter
    if ctx.invoked_subcommand is None:
        client = _make_client(ctx.obj)
        collector = NetatmoCollector(
            client,
            refresh_interval=refresh_interval,
            stale_threshold=age_stale,
        )
        registry = CollectorRegistry()
        registry.register(collector)

        log.info(
            "Source: %s, refresh every %.0fs, stale after %.0fs",
            client.name(), refresh_interval, age_stale,
        )
        try:
            run_server(registry, addr)
        finally:
            collector.close()
            client.close()


@cli.command()
@click.pass_context
def show(ctx):
    """Read the stations once and print the current readings."""
    client = _make_client(ctx.obj)
    try:
        stations = client.read()
    except Exception as e:
        click.echo(f"Error reading stations: {e}")
        raise SystemExit(1)
    finally:
        client.close()

    snapshot = Snapshot(captured_at=time.time(), stations=tuple(stations))
    print_readings(snapshot, client.name(), stale_threshold=ctx.obj["age_stale"])


if __name__ == "__main__":
    cli()
