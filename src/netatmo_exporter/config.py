"""
Command-line parameter types: durations like "8m" or "1h30m", and
listen addresses like ":9210" or "127.0.0.1:9210".
"""

from __future__ import annotations

import math
import re
from typing import Tuple

import click

DEFAULT_ADDR = ":9210"
DEFAULT_REFRESH_INTERVAL = "8m"
DEFAULT_AGE_STALE = "1h"

_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}
_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")


def parse_duration(text: str) -> float:
    """Parse "90", "90s", "8m", "1h30m" into seconds. Raises ValueError."""
    text = text.strip()
    if not text:
        raise ValueError("empty duration")

    try:
        seconds = float(text)  # bare number = seconds
    except ValueError:
        pass
    else:
        if not math.isfinite(seconds):
            raise ValueError(f"invalid duration {text!r}")
        return seconds

    total = 0.0
    pos = 0
    for match in _DURATION_PART_RE.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()

    if pos != len(text):
        raise ValueError(f"invalid duration {text!r}")
    return total


def parse_addr(text: str) -> Tuple[str, int]:
    """Split "host:port" (host may be empty) into (host, port)."""
    host, sep, port_str = text.rpartition(":")
    if not sep:
        raise ValueError(f"address {text!r} has no port")
    host = host.strip("[]")  # [::1]:9210

    try:
        port = int(port_str)
    except ValueError:
        raise ValueError(f"invalid port {port_str!r}") from None
    if not 0 <= port <= 65535:
        raise ValueError(f"port {port} out of range")
    return host, port


class Duration(click.ParamType):
    """Positive duration, converted to seconds."""

    name = "duration"

    def convert(self, value, param, ctx):
        if isinstance(value, (int, float)):
            seconds = float(value)
        else:
            try:
                seconds = parse_duration(value)
            except ValueError as e:
                self.fail(str(e), param, ctx)
        if seconds <= 0:
            self.fail(f"duration must be positive, got {value!r}", param, ctx)
        return seconds


class ListenAddress(click.ParamType):
    name = "addr"

    def convert(self, value, param, ctx):
        if isinstance(value, tuple):
            return value
        try:
            return parse_addr(value)
        except ValueError as e:
            self.fail(str(e), param, ctx)


DURATION = Duration()
LISTEN_ADDRESS = ListenAddress()
