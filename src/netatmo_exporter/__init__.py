"""Prometheus exporter for Netatmo weather stations."""

__version__ = "0.4.0"
