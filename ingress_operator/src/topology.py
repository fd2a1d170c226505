"""One-time backfill of the ingress config ``status.defaultPlacement`` field.

Clusters installed before the field existed have it unset, and the
controllers then assume ``Workers``.  That is the right answer almost
everywhere, but not on a none-platform single-node cluster, where ingress
must follow the control plane so that adding workers later does not strand
the routers.  Freshly installed clusters get ``ControlPlane`` in that case,
so the backfill gives older single-node clusters the same value.  Every
other cluster gets an explicit ``Workers`` so that later changes (more
nodes, for instance) can never re-trigger the decision.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from ingress_operator.src.errors import StoreError
from ingress_operator.src.metrics import METRICS
from ingress_operator.src.retry import DEFAULT_BACKOFF, Backoff, retry_on_conflict
from ingress_operator.src.store import (
    INFRASTRUCTURE,
    INGRESS_CONFIG,
    NODE,
    ManagedResource,
    ObjectStore,
    cluster_config,
)

LOGGER = logging.getLogger(__name__)

PLACEMENT_CONTROL_PLANE = "ControlPlane"
PLACEMENT_WORKERS = "Workers"

SINGLE_REPLICA_TOPOLOGY = "SingleReplica"
EXTERNAL_TOPOLOGY = "External"
NONE_PLATFORM = "None"


def choose_default_placement(infrastructure: ManagedResource, node_count: int) -> str:
    """Return ``ControlPlane`` for a none-platform single-node cluster, else ``Workers``."""
    status = infrastructure.status
    platform_type = (status.get("platformStatus") or {}).get("type")
    if (
        node_count == 1
        and status.get("controlPlaneTopology") == SINGLE_REPLICA_TOPOLOGY
        and status.get("infrastructureTopology") == SINGLE_REPLICA_TOPOLOGY
        and platform_type == NONE_PLATFORM
    ):
        return PLACEMENT_CONTROL_PLANE
    return PLACEMENT_WORKERS


def ensure_default_placement(
    store: ObjectStore,
    backoff: Backoff = DEFAULT_BACKOFF,
) -> str | None:
    """Backfill ``status.defaultPlacement`` on the cluster ingress config if unset.

    Returns the value written, or ``None`` when the field was already set
    (by a fresh install, a previous run of this function, or a concurrent
    writer) and nothing was written.  Safe to call on every start.
    """
    infrastructure = store.get(cluster_config(INFRASTRUCTURE))
    ingress_identity = cluster_config(INGRESS_CONFIG)
    ingress_config = store.get(ingress_identity)

    if ingress_config.status.get("defaultPlacement"):
        return None

    nodes: Sequence[ManagedResource] = store.list(NODE)
    desired = choose_default_placement(infrastructure, len(nodes))

    def _patch() -> str | None:
        latest = store.get(ingress_identity)
        if latest.status.get("defaultPlacement"):
            return None
        updated = latest.deep_copy()
        updated.body.setdefault("status", {})["defaultPlacement"] = desired
        store.patch_status(updated)
        return desired

    try:
        written = retry_on_conflict(_patch, backoff=backoff)
    except StoreError as exc:
        raise type(exc)(
            f"unable to update ingress config {ingress_identity.name!r}: {exc}",
            status=exc.status,
        ) from exc

    if written is None:
        LOGGER.info("Ingress config defaultPlacement was set concurrently; leaving it alone")
        return None

    METRICS.default_placement_writes_total.labels(placement=written).inc()
    LOGGER.info(
        "Patched ingress config %s defaultPlacement status to %s",
        ingress_identity.name,
        written,
    )
    return written
