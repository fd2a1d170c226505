from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from enum import StrEnum

from ingress_operator.src.metrics import METRICS


class DriverState(StrEnum):
    IDLE = "idle"
    GATED = "gated"
    RUNNING = "running"
    WAITING = "waiting"
    STOPPED = "stopped"


class PeriodicDriver:
    """Runs a reconcile body on a fixed interval until a stop event fires.

    Each tick first passes the cache sync gate: ``cache_sync(timeout,
    stop_event)`` must return True before the body is trusted to make
    decisions.  A failed or timed-out sync skips the tick, and so does a
    stop that fires while the gate is waiting.  The body runs at most once
    per tick and ticks never overlap: the interval is measured from the end
    of one body to the start of the next gate, so a slow body delays the
    next tick instead of running in parallel with it.

    Body failures are logged and counted but never escape: the resource is
    left out of sync until the next tick converges it.  The stop event is
    checked at every wait boundary; a body already running is allowed to
    finish.

    The first tick runs as soon as :meth:`run` is called.
    """

    def __init__(
        self,
        name: str,
        body: Callable[[], object],
        interval_seconds: float,
        cache_sync: Callable[[float, threading.Event | None], bool] | None = None,
        cache_sync_timeout_seconds: float = 30.0,
        logger: logging.Logger | None = None,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        if cache_sync_timeout_seconds <= 0:
            raise ValueError("cache_sync_timeout_seconds must be > 0")
        self.name = name
        self.body = body
        self.interval_seconds = interval_seconds
        self.cache_sync = cache_sync
        self.cache_sync_timeout_seconds = cache_sync_timeout_seconds
        self.logger = logger or logging.getLogger(__name__)
        self._state = DriverState.IDLE
        self._last_success: float | None = None

    @property
    def state(self) -> DriverState:
        return self._state

    @property
    def last_success(self) -> float | None:
        """Monotonic timestamp of the last tick whose body completed without error."""
        return self._last_success

    def _cache_synced(self, stop_event: threading.Event | None) -> bool:
        if self.cache_sync is None:
            return True
        try:
            return bool(self.cache_sync(self.cache_sync_timeout_seconds, stop_event))
        except Exception:
            self.logger.exception("Cache sync check failed for driver %s", self.name)
            return False

    def tick(self, stop_event: threading.Event | None = None) -> bool:
        """Run one gated tick.  Returns True when the body ran and succeeded.

        When *stop_event* is set by the time the gate returns, the body is
        not started.
        """
        self._state = DriverState.GATED
        synced = self._cache_synced(stop_event)
        if stop_event is not None and stop_event.is_set():
            self.logger.info(
                "Stop requested while %s waited for cache sync; skipping this tick",
                self.name,
                extra={"driver": self.name},
            )
            METRICS.driver_ticks_total.labels(driver=self.name, result="stopped").inc()
            return False
        if not synced:
            self.logger.error(
                "Failed to sync cache before running %s; skipping this tick",
                self.name,
                extra={"driver": self.name},
            )
            METRICS.driver_ticks_total.labels(driver=self.name, result="cache_unsynced").inc()
            return False

        self._state = DriverState.RUNNING
        try:
            self.body()
        except Exception:
            self.logger.exception(
                "Reconcile tick for %s failed; will retry in %.0fs",
                self.name,
                self.interval_seconds,
                extra={"driver": self.name},
            )
            METRICS.driver_ticks_total.labels(driver=self.name, result="error").inc()
            METRICS.reconcile_errors_total.labels(driver=self.name).inc()
            return False

        self._last_success = time.monotonic()
        METRICS.driver_ticks_total.labels(driver=self.name, result="success").inc()
        return True

    def run(self, stop_event: threading.Event) -> None:
        """Tick until *stop_event* is set.  Blocks the calling thread."""
        self.logger.info(
            "Starting periodic driver %s (interval=%ss)", self.name, self.interval_seconds
        )
        while not stop_event.is_set():
            self.tick(stop_event)
            self._state = DriverState.WAITING
            stop_event.wait(timeout=self.interval_seconds)
        self._state = DriverState.STOPPED
        self.logger.info("Stopped periodic driver %s", self.name)

    def start(self, stop_event: threading.Event) -> threading.Thread:
        """Run the driver on a daemon thread and return the thread."""
        thread = threading.Thread(
            target=self.run,
            args=(stop_event,),
            name=f"driver-{self.name}",
            daemon=True,
        )
        thread.start()
        return thread
