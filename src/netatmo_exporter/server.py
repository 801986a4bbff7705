"""
HTTP exposition endpoint.

    GET /metrics   Prometheus text format
    GET /version   {"version": "..."}
    GET /          redirects to /metrics

Served by a ThreadingHTTPServer, one thread per request.
"""

from __future__ import annotations

import json
import logging
import socket
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Tuple

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest

from netatmo_exporter import __version__

log = logging.getLogger(__name__)


class _ExporterHandler(BaseHTTPRequestHandler):
    registry: CollectorRegistry  # set by make_handler

    def do_GET(self):
        path = self.path.split("?", 1)[0]
        if path == "/metrics":
            self._send(200, generate_latest(self.registry), CONTENT_TYPE_LATEST)
        elif path == "/version":
            body = json.dumps({"version": __version__}).encode()
            self._send(200, body, "application/json")
        elif path == "/":
            self.send_response(302)
            self.send_header("Location", "/metrics")
            self.send_header("Content-Length", "0")
            self.end_headers()
        else:
            self._send(404, b"not found\n", "text/plain; charset=utf-8")

    def _send(self, status: int, body: bytes, content_type: str):
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        log.debug("%s - %s", self.address_string(), format % args)


def make_handler(registry: CollectorRegistry) -> type:
    return type("ExporterHandler", (_ExporterHandler,), {"registry": registry})


class _IPv6Server(ThreadingHTTPServer):
    address_family = socket.AF_INET6


def server_class(host: str) -> type:
    """IPv6 literal hosts ("::1", "::") need an AF_INET6 socket."""
    return _IPv6Server if ":" in host else ThreadingHTTPServer


def make_server(registry: CollectorRegistry, addr: Tuple[str, int]) -> ThreadingHTTPServer:
    server = server_class(addr[0])(addr, make_handler(registry))
    server.daemon_threads = True
    return server


def run_server(registry: CollectorRegistry, addr: Tuple[str, int]):
    server = make_server(registry, addr)
    host, port = server.server_address[:2]
    log.info("Listen on %s:%d...", host or "0.0.0.0", port)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()
        log.info("Server stopped.")
