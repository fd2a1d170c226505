from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from ingress_operator.src.config import OperatorConfig
from ingress_operator.src.defaults import ensure_default_ingress_controller
from ingress_operator.src.errors import StoreError
from ingress_operator.src.loglevel import LogLevelRegulator
from ingress_operator.src.periodic import PeriodicDriver
from ingress_operator.src.store import (
    INFRASTRUCTURE,
    INGRESS_CONFIG,
    ManagedResource,
    ObjectStore,
    cluster_config,
)
from ingress_operator.src.subscription import reconcile_gateway_api
from ingress_operator.src.topology import EXTERNAL_TOPOLOGY, ensure_default_placement
from ingress_operator.src.trustedca import ensure_trusted_ca_configmap

LOGGER = logging.getLogger(__name__)

DRIVER_STOP_TIMEOUT_SECONDS = 30.0


class Operator:
    """Wires the periodic drivers for every resource family the operator manages.

    :meth:`start` performs the startup sequence and then blocks until the
    shared stop event fires:

    1. Read the cluster Infrastructure config.  Failure here is fatal, since
       the set of drivers depends on it.
    2. Start one driver per resource family on its own thread.  The default
       IngressController driver is skipped when the control plane is
       external (hosted clusters run ingress elsewhere).
    3. Run the one-time default placement backfill.  Failure is logged and
       startup continues.
    4. Mark the operator ready and wait for the stop event.
    """

    def __init__(
        self,
        store: ObjectStore,
        config: OperatorConfig,
        log_regulator: LogLevelRegulator | None = None,
    ) -> None:
        self.store = store
        self.config = config
        self.log_regulator = log_regulator or LogLevelRegulator()
        self.ready = threading.Event()
        self.drivers: list[PeriodicDriver] = []

    def ensure_log_level(self) -> bool:
        """Apply ``spec.operatorLogLevel`` of the cluster ingress config."""
        ingress_config = self.store.get(cluster_config(INGRESS_CONFIG))
        return self.log_regulator.apply(ingress_config.spec.get("operatorLogLevel"))

    def _driver(
        self, name: str, body: Callable[[], object], *, gated: bool = True
    ) -> PeriodicDriver:
        return PeriodicDriver(
            name=name,
            body=body,
            interval_seconds=self.config.reconcile_interval_seconds,
            cache_sync=self.store.wait_for_cache_sync if gated else None,
            cache_sync_timeout_seconds=self.config.cache_sync_timeout_seconds,
        )

    def build_drivers(self, infrastructure: ManagedResource) -> list[PeriodicDriver]:
        store = self.store
        config = self.config
        drivers: list[PeriodicDriver] = []

        if infrastructure.status.get("controlPlaneTopology") == EXTERNAL_TOPOLOGY:
            LOGGER.info("Skipping default ingresscontroller creation for external control plane")
        else:
            drivers.append(
                self._driver(
                    "default-ingresscontroller",
                    lambda: ensure_default_ingress_controller(
                        store, config.namespace, infrastructure
                    ),
                )
            )

        drivers.append(
            self._driver(
                "trusted-ca-configmap",
                lambda: ensure_trusted_ca_configmap(store, config.namespace),
            )
        )
        drivers.append(
            self._driver(
                "gateway-api",
                lambda: reconcile_gateway_api(store, config.gateway_api_enabled),
            )
        )
        drivers.append(self._driver("log-level", self.ensure_log_level, gated=False))
        return drivers

    def start(self, stop_event: threading.Event) -> None:
        infrastructure = self.store.get(cluster_config(INFRASTRUCTURE))

        self.drivers = self.build_drivers(infrastructure)
        threads = [driver.start(stop_event) for driver in self.drivers]

        try:
            ensure_default_placement(self.store)
        except StoreError:
            LOGGER.exception("Failed to backfill the ingress config default placement")

        self.ready.set()
        LOGGER.info("Operator started with %d driver(s)", len(self.drivers))
        stop_event.wait()

        self.ready.clear()
        for thread in threads:
            thread.join(timeout=DRIVER_STOP_TIMEOUT_SECONDS)
            if thread.is_alive():
                LOGGER.error(
                    "Driver thread %s did not stop within %ss",
                    thread.name,
                    DRIVER_STOP_TIMEOUT_SECONDS,
                )
