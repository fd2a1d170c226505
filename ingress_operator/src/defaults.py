from __future__ import annotations

import logging
from typing import Any

from ingress_operator.src.ensure import ReconcileOutcome, ensure_in_store, fetch_optional
from ingress_operator.src.store import (
    INGRESS_CONFIG,
    INGRESS_CONTROLLER,
    ManagedResource,
    ObjectStore,
    ResourceIdentity,
    cluster_config,
)
from ingress_operator.src.topology import PLACEMENT_CONTROL_PLANE, SINGLE_REPLICA_TOPOLOGY

LOGGER = logging.getLogger(__name__)

DEFAULT_INGRESS_CONTROLLER_NAME = "default"


def default_ingress_controller_identity(namespace: str) -> ResourceIdentity:
    return ResourceIdentity(
        kind=INGRESS_CONTROLLER, name=DEFAULT_INGRESS_CONTROLLER_NAME, namespace=namespace
    )


def determine_replicas(
    ingress_config: ManagedResource | None, infrastructure: ManagedResource
) -> int:
    """Return 1 when the topology ingress lands on is single-replica, else 2.

    Ingress lands on the control plane when the ingress config's default
    placement says so, and on the infrastructure nodes otherwise.  A missing
    ingress config means the default (infrastructure) placement.
    """
    status = infrastructure.status
    topology = status.get("infrastructureTopology")
    if ingress_config is not None:
        if ingress_config.status.get("defaultPlacement") == PLACEMENT_CONTROL_PLANE:
            topology = status.get("controlPlaneTopology")
    return 1 if topology == SINGLE_REPLICA_TOPOLOGY else 2


def _wants_aws_nlb(ingress_config: ManagedResource | None) -> bool:
    if ingress_config is None:
        return False
    platform = (ingress_config.spec.get("loadBalancer") or {}).get("platform") or {}
    if platform.get("type") != "AWS":
        return False
    return (platform.get("aws") or {}).get("type") == "NLB"


def desired_default_ingress_controller(
    namespace: str,
    infrastructure: ManagedResource,
    ingress_config: ManagedResource | None,
) -> ManagedResource:
    # Replicas must be persisted as a number; a null value breaks the /scale subresource.
    spec: dict[str, Any] = {"replicas": determine_replicas(ingress_config, infrastructure)}
    if _wants_aws_nlb(ingress_config):
        spec["endpointPublishingStrategy"] = {
            "type": "LoadBalancerService",
            "loadBalancer": {
                "scope": "External",
                "providerParameters": {
                    "type": "AWS",
                    "aws": {"type": "NLB"},
                },
            },
        }
    return ManagedResource.build(default_ingress_controller_identity(namespace), spec=spec)


def ensure_default_ingress_controller(
    store: ObjectStore,
    namespace: str,
    infrastructure: ManagedResource,
) -> ReconcileOutcome:
    """Create the default IngressController if it does not exist.

    Only existence is managed: once created, the object belongs to the
    cluster administrator and is never updated from here.
    """
    ingress_config = fetch_optional(store, cluster_config(INGRESS_CONFIG))
    return ensure_in_store(
        store,
        default_ingress_controller_identity(namespace),
        want_exists=True,
        build_desired=lambda: desired_default_ingress_controller(
            namespace, infrastructure, ingress_config
        ),
        owned_fields=(),
        logger=LOGGER,
    )
