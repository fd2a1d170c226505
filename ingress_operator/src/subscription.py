from __future__ import annotations

import logging

from ingress_operator.src.compare import render_diff
from ingress_operator.src.ensure import Action, ReconcileOutcome, ensure_in_store, record_outcome
from ingress_operator.src.errors import StoreError
from ingress_operator.src.retry import DEFAULT_BACKOFF, Backoff, retry_on_conflict
from ingress_operator.src.store import (
    INSTALL_PLAN,
    SUBSCRIPTION,
    ManagedResource,
    ObjectStore,
    ResourceIdentity,
)

LOGGER = logging.getLogger(__name__)

SERVICE_MESH_OPERATOR_DESIRED_VERSION = "servicemeshoperator.v2.5.0"
SERVICE_MESH_OPERATOR_NAMESPACE = "openshift-operators"
SERVICE_MESH_SUBSCRIPTION_NAME = "servicemeshoperator"


def service_mesh_subscription_identity() -> ResourceIdentity:
    return ResourceIdentity(
        kind=SUBSCRIPTION,
        name=SERVICE_MESH_SUBSCRIPTION_NAME,
        namespace=SERVICE_MESH_OPERATOR_NAMESPACE,
    )


def desired_subscription() -> ManagedResource:
    return ManagedResource.build(
        service_mesh_subscription_identity(),
        spec={
            "channel": "stable",
            "installPlanApproval": "Manual",
            "name": "servicemeshoperator",
            "source": "redhat-operators",
            "sourceNamespace": "openshift-marketplace",
            "startingCSV": SERVICE_MESH_OPERATOR_DESIRED_VERSION,
        },
    )


def ensure_service_mesh_subscription(store: ObjectStore, want_exists: bool) -> ReconcileOutcome:
    """Keep the service mesh operator subscription present iff gateway API support is on."""
    return ensure_in_store(
        store,
        service_mesh_subscription_identity(),
        want_exists=want_exists,
        build_desired=desired_subscription,
        logger=LOGGER,
    )


def _find_install_plan(plans: list[ManagedResource]) -> ManagedResource | None:
    for plan in plans:
        if SERVICE_MESH_OPERATOR_DESIRED_VERSION in (
            plan.spec.get("clusterServiceVersionNames") or []
        ):
            return plan
    return None


def ensure_service_mesh_install_plan(
    store: ObjectStore,
    backoff: Backoff = DEFAULT_BACKOFF,
) -> ManagedResource | None:
    """Approve the install plan for the pinned service mesh operator version.

    The subscription uses manual approval so that only the pinned CSV is
    ever installed.  Returns the plan once approved, or ``None`` while OLM
    has not produced any install plan yet.  Raises :class:`StoreError` when
    install plans exist but none of them is for the pinned version.
    """
    plans = list(store.list(INSTALL_PLAN, namespace=SERVICE_MESH_OPERATOR_NAMESPACE))
    if not plans:
        return None
    plan = _find_install_plan(plans)
    if plan is None:
        raise StoreError(
            f"no InstallPlan with cluster service version {SERVICE_MESH_OPERATOR_DESIRED_VERSION} found"
        )
    if plan.spec.get("approved"):
        return plan

    def _approve() -> ManagedResource:
        latest = store.get(plan.identity)
        if latest.spec.get("approved"):
            return latest
        approved = latest.deep_copy()
        approved.body.setdefault("spec", {})["approved"] = True
        diff = render_diff(latest, approved)
        result = store.update(approved)
        record_outcome(
            ReconcileOutcome(
                identity=plan.identity, action=Action.UPDATED, result=result, diff=diff
            ),
            LOGGER,
        )
        return result

    return retry_on_conflict(_approve, backoff=backoff)


def reconcile_gateway_api(store: ObjectStore, enabled: bool) -> ReconcileOutcome:
    """One tick of the gateway API family: subscription first, then its install plan."""
    outcome = ensure_service_mesh_subscription(store, want_exists=enabled)
    if outcome.exists:
        ensure_service_mesh_install_plan(store)
    return outcome
