from __future__ import annotations

import copy
import threading
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass(frozen=True)
class ResourceKind:
    """Addressing information for one resource family in the object store.

    ``snake_name`` is only needed for core (group-less) kinds, where requests
    are dispatched to the typed ``CoreV1Api`` methods such as
    ``read_namespaced_config_map``.
    """

    api_version: str
    kind: str
    plural: str
    namespaced: bool
    snake_name: str = ""

    @property
    def group(self) -> str:
        group, _, _ = self.api_version.rpartition("/")
        return group

    @property
    def version(self) -> str:
        return self.api_version.rpartition("/")[2]


INGRESS_CONTROLLER = ResourceKind(
    "operator.openshift.io/v1", "IngressController", "ingresscontrollers", namespaced=True
)
INGRESS_CONFIG = ResourceKind("config.openshift.io/v1", "Ingress", "ingresses", namespaced=False)
INFRASTRUCTURE = ResourceKind(
    "config.openshift.io/v1", "Infrastructure", "infrastructures", namespaced=False
)
NODE = ResourceKind("v1", "Node", "nodes", namespaced=False, snake_name="node")
CONFIG_MAP = ResourceKind("v1", "ConfigMap", "configmaps", namespaced=True, snake_name="config_map")
SUBSCRIPTION = ResourceKind(
    "operators.coreos.com/v1alpha1", "Subscription", "subscriptions", namespaced=True
)
INSTALL_PLAN = ResourceKind(
    "operators.coreos.com/v1alpha1", "InstallPlan", "installplans", namespaced=True
)


@dataclass(frozen=True)
class ResourceIdentity:
    kind: ResourceKind
    name: str
    namespace: str | None = None

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.kind.kind} {self.namespace}/{self.name}"
        return f"{self.kind.kind} {self.name}"


def cluster_config(kind: ResourceKind) -> ResourceIdentity:
    """Return the identity of the ``cluster`` singleton of a config.openshift.io kind."""
    return ResourceIdentity(kind=kind, name="cluster")


@dataclass
class ManagedResource:
    """A resource as stored: its identity plus the full JSON body.

    The body keeps the wire shape (``metadata``, ``spec``, ``status`` and any
    kind-specific top-level keys such as ConfigMap ``data``) so that fields
    owned by other writers survive a read-modify-write untouched.
    """

    identity: ResourceIdentity
    body: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        identity: ResourceIdentity,
        *,
        labels: dict[str, str] | None = None,
        annotations: dict[str, str] | None = None,
        **fields: Any,
    ) -> ManagedResource:
        """Build a desired resource (no resourceVersion) with type and object metadata set."""
        metadata: dict[str, Any] = {"name": identity.name}
        if identity.namespace:
            metadata["namespace"] = identity.namespace
        if labels:
            metadata["labels"] = dict(labels)
        if annotations:
            metadata["annotations"] = dict(annotations)
        body: dict[str, Any] = {
            "apiVersion": identity.kind.api_version,
            "kind": identity.kind.kind,
            "metadata": metadata,
        }
        body.update(fields)
        return cls(identity=identity, body=body)

    @classmethod
    def from_body(cls, kind: ResourceKind, body: dict[str, Any]) -> ManagedResource:
        metadata = body.get("metadata") or {}
        identity = ResourceIdentity(
            kind=kind,
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace") if kind.namespaced else None,
        )
        return cls(identity=identity, body=body)

    @property
    def metadata(self) -> dict[str, Any]:
        return self.body.get("metadata") or {}

    @property
    def resource_version(self) -> str | None:
        return self.metadata.get("resourceVersion")

    @property
    def labels(self) -> dict[str, str]:
        return self.metadata.get("labels") or {}

    @property
    def annotations(self) -> dict[str, str]:
        return self.metadata.get("annotations") or {}

    @property
    def spec(self) -> dict[str, Any]:
        return self.body.get("spec") or {}

    @property
    def status(self) -> dict[str, Any]:
        return self.body.get("status") or {}

    def deep_copy(self) -> ManagedResource:
        return ManagedResource(identity=self.identity, body=copy.deepcopy(self.body))


class ObjectStore(Protocol):
    """Capabilities the reconciliation core needs from the external store.

    Writes use optimistic concurrency: ``update`` and ``patch_status`` must
    reject a body whose ``metadata.resourceVersion`` is stale with
    :class:`~ingress_operator.src.errors.ConflictError`.  Reads may be served
    from an eventually consistent cache, so callers never assume a read
    immediately after a write observes that write.
    """

    def get(self, identity: ResourceIdentity) -> ManagedResource: ...

    def list(
        self,
        kind: ResourceKind,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> Sequence[ManagedResource]: ...

    def create(self, resource: ManagedResource) -> ManagedResource: ...

    def update(self, resource: ManagedResource) -> ManagedResource: ...

    def patch_status(self, resource: ManagedResource) -> ManagedResource: ...

    def delete(self, identity: ResourceIdentity) -> None: ...

    def wait_for_cache_sync(
        self, timeout_seconds: float, stop_event: threading.Event | None = None
    ) -> bool: ...
