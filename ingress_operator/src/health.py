from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any

from ingress_operator.src.periodic import PeriodicDriver


class _HealthHandler(BaseHTTPRequestHandler):
    """Serves liveness, readiness and Prometheus metrics.

    ``/readyz`` is 200 once the operator finished its startup sequence; the
    body lists the state of every periodic driver either way.
    """

    ready_event: threading.Event
    drivers_fn: Callable[[], Sequence[PeriodicDriver]]

    def _respond(
        self, status: int, body: bytes = b"", content_type: str | None = None
    ) -> None:
        self.send_response(status)
        if content_type:
            self.send_header("Content-Type", content_type)
        self.end_headers()
        if body:
            self.wfile.write(body)

    def _readiness_body(self, ready: bool) -> bytes:
        parts = [f"ready={'true' if ready else 'false'}"]
        parts.extend(f"{driver.name}={driver.state}" for driver in self.drivers_fn())
        return " ".join(parts).encode()

    def do_GET(self) -> None:
        if self.path == "/healthz":
            self._respond(200, b"ok")
        elif self.path == "/readyz":
            ready = self.ready_event.is_set()
            self._respond(200 if ready else 503, self._readiness_body(ready))
        elif self.path == "/metrics":
            from prometheus_client import generate_latest

            self._respond(200, generate_latest(), "text/plain; version=0.0.4; charset=utf-8")
        else:
            self._respond(404)

    def log_message(self, fmt: str, *args: Any) -> None:
        logging.getLogger("ingress_operator.health").debug(fmt, *args)


def make_health_handler(
    ready: threading.Event,
    drivers: Callable[[], Sequence[PeriodicDriver]] | None = None,
) -> type[_HealthHandler]:
    """Return a handler class bound to the readiness event and driver source.

    ``drivers`` is a callable so the server can start before the operator
    has created its drivers.
    """

    def _no_drivers() -> Sequence[PeriodicDriver]:
        return ()

    class _BoundHealthHandler(_HealthHandler):
        ready_event = ready
        drivers_fn = staticmethod(drivers or _no_drivers)

    return _BoundHealthHandler


def start_health_server(
    ready: threading.Event,
    port: int,
    drivers: Callable[[], Sequence[PeriodicDriver]] | None = None,
) -> ThreadingHTTPServer:
    """Start the health/metrics HTTP server in a daemon thread and return it."""
    handler_class = make_health_handler(ready, drivers=drivers)
    server = ThreadingHTTPServer(("0.0.0.0", port), handler_class)  # noqa: S104
    server.daemon_threads = True
    server.block_on_close = False
    threading.Thread(target=server.serve_forever, daemon=True).start()
    logging.getLogger(__name__).info("Health server listening on :%d", port)
    return server
