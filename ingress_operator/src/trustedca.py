from __future__ import annotations

import logging

from ingress_operator.src.compare import FieldPath
from ingress_operator.src.ensure import ReconcileOutcome, ensure_in_store
from ingress_operator.src.store import CONFIG_MAP, ManagedResource, ObjectStore, ResourceIdentity

LOGGER = logging.getLogger(__name__)

TRUSTED_CA_CONFIGMAP_NAME = "trusted-ca"
INJECT_TRUSTED_CABUNDLE_LABEL = "config.openshift.io/inject-trusted-cabundle"

# The CA injector owns ``data``; only the label that requests injection is ours.
OWNED_FIELDS: tuple[FieldPath, ...] = (("metadata", "labels", INJECT_TRUSTED_CABUNDLE_LABEL),)


def trusted_ca_identity(namespace: str) -> ResourceIdentity:
    return ResourceIdentity(kind=CONFIG_MAP, name=TRUSTED_CA_CONFIGMAP_NAME, namespace=namespace)


def desired_trusted_ca_configmap(namespace: str) -> ManagedResource:
    """Return the configmap that asks the CA injector to fill in the trusted CA bundle."""
    return ManagedResource.build(
        trusted_ca_identity(namespace),
        labels={INJECT_TRUSTED_CABUNDLE_LABEL: "true"},
        annotations={"description": "ConfigMap providing service CA bundle."},
    )


def ensure_trusted_ca_configmap(store: ObjectStore, namespace: str) -> ReconcileOutcome:
    return ensure_in_store(
        store,
        trusted_ca_identity(namespace),
        want_exists=True,
        build_desired=lambda: desired_trusted_ca_configmap(namespace),
        owned_fields=OWNED_FIELDS,
        logger=LOGGER,
    )
