from __future__ import annotations

import logging
import os
import signal
import threading

from ingress_operator.src.config import load_config
from ingress_operator.src.health import start_health_server
from ingress_operator.src.kube import build_store, load_kube_configuration
from ingress_operator.src.logs import configure_logging
from ingress_operator.src.loglevel import LogLevelRegulator
from ingress_operator.src.metrics import METRICS
from ingress_operator.src.operator_runtime import Operator

RUNTIME_VERSION = "0.1.0"


def main() -> None:
    """Operator entrypoint: configure logging, build the store, and run until signalled."""
    configure_logging(os.getenv("LOG_LEVEL", "INFO"))
    METRICS.build_info.info(
        {
            "version": os.getenv("APP_VERSION", RUNTIME_VERSION),
            "revision": os.getenv("GIT_SHA", "unknown"),
        }
    )

    config = load_config()
    load_kube_configuration()
    store = build_store()

    operator = Operator(store=store, config=config, log_regulator=LogLevelRegulator())
    health_server = start_health_server(
        ready=operator.ready,
        port=config.health_port,
        drivers=lambda: operator.drivers,
    )

    shutdown_event = threading.Event()

    def _handle_signal(signum: int, frame: object) -> None:
        logging.getLogger(__name__).info("Received signal %d, shutting down", signum)
        shutdown_event.set()

    signal.signal(signal.SIGTERM, _handle_signal)
    signal.signal(signal.SIGINT, _handle_signal)

    try:
        operator.start(shutdown_event)
    finally:
        shutdown_event.set()
        health_server.shutdown()
    logging.getLogger(__name__).info("Operator stopped")


if __name__ == "__main__":
    main()
