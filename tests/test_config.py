"""Tests for duration and listen-address parsing."""

import pytest

from netatmo_exporter.config import parse_addr, parse_duration


@pytest.mark.parametrize("text,seconds", [
    ("90", 90.0),
    ("90s", 90.0),
    ("8m", 480.0),
    ("1h", 3600.0),
    ("1h30m", 5400.0),
    ("1.5m", 90.0),
    ("500ms", 0.5),
])
def test_parse_duration(text, seconds):
    assert parse_duration(text) == seconds


@pytest.mark.parametrize("text", ["", "m", "8x", "1h 30m", "ten minutes"])
def test_parse_duration_rejects_garbage(text):
    with pytest.raises(ValueError):
        parse_duration(text)


def test_parse_addr():
    assert parse_addr(":9210") == ("", 9210)
    assert parse_addr("127.0.0.1:8080") == ("127.0.0.1", 8080)
    assert parse_addr("[::1]:9210") == ("::1", 9210)


@pytest.mark.parametrize("text", ["9210", "host:", "host:abc", ":70000"])
def test_parse_addr_rejects_garbage(text):
    with pytest.raises(ValueError):
        parse_addr(text)
