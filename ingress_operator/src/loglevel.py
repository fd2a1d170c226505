from __future__ import annotations

import logging
import threading
from enum import StrEnum

from ingress_operator.src.metrics import METRICS

TRACE = 5
TRACE_ALL = 3

logging.addLevelName(TRACE, "TRACE")
logging.addLevelName(TRACE_ALL, "TRACE_ALL")


class OperatorLogLevel(StrEnum):
    """Verbosity values accepted in the cluster Ingress config ``spec.operatorLogLevel``."""

    NORMAL = "Normal"
    DEBUG = "Debug"
    TRACE = "Trace"
    TRACE_ALL = "TraceAll"


_THRESHOLDS: dict[str, int] = {
    OperatorLogLevel.NORMAL: logging.INFO,
    OperatorLogLevel.DEBUG: logging.DEBUG,
    OperatorLogLevel.TRACE: TRACE,
    OperatorLogLevel.TRACE_ALL: TRACE_ALL,
}


def threshold_for(setting: str | None) -> int:
    """Map a verbosity setting to a ``logging`` threshold.  Unset or unknown means Normal."""
    return _THRESHOLDS.get(setting or "", logging.INFO)


class LogLevelRegulator:
    """Owns the process-wide logging threshold.

    The level starts at whatever *target* is configured with at startup and
    is only ever changed through :meth:`apply`, which writes the logger
    level only when it actually differs.  A lock serializes writers; readers
    of ``logging`` never see a half-applied update because ``setLevel`` is
    a single assignment.
    """

    def __init__(self, target: logging.Logger | None = None) -> None:
        self.target = target or logging.getLogger()
        self._lock = threading.Lock()
        self._level = self.target.getEffectiveLevel()
        METRICS.log_level.set(self._level)

    @property
    def current_level(self) -> int:
        with self._lock:
            return self._level

    def apply(self, setting: str | None) -> bool:
        """Apply *setting*.  Returns True when the threshold changed."""
        desired = threshold_for(setting)
        with self._lock:
            if desired == self._level:
                return False
            self.target.setLevel(desired)
            self._level = desired
        METRICS.log_level.set(desired)
        self.target.log(desired, "Updated log level to %s", logging.getLevelName(desired))
        return True
