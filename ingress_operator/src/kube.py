from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import Any

import urllib3
from kubernetes import client, config
from kubernetes.client import ApiClient, ApiException
from kubernetes.config.config_exception import ConfigException

from ingress_operator.src.errors import FatalError, TransientError, from_api_exception
from ingress_operator.src.store import (
    ManagedResource,
    ResourceIdentity,
    ResourceKind,
)

LOGGER = logging.getLogger(__name__)

MERGE_PATCH = "application/merge-patch+json"


def load_kube_configuration() -> None:
    """Load Kubernetes client configuration.

    Attempts in-cluster config first (running inside a pod), falling back
    to the local kubeconfig for development.
    """
    try:
        config.load_incluster_config()
        LOGGER.info("Loaded in-cluster Kubernetes configuration")
    except ConfigException:
        config.load_kube_config()
        LOGGER.info("Loaded local kubeconfig")


class KubeObjectStore:
    """Object store backed directly by the Kubernetes API server.

    Every call goes to the API server; nothing is served from a local cache.
    CRD-backed kinds go through ``CustomObjectsApi`` and core kinds through
    the typed ``CoreV1Api`` methods, with typed responses converted back to
    plain JSON dicts so both look the same to the reconciliation core.
    """

    def __init__(
        self,
        api_client: ApiClient | None = None,
        request_timeout_seconds: float = 30.0,
    ) -> None:
        self.api_client = api_client or client.ApiClient()
        self.core_api = client.CoreV1Api(self.api_client)
        self.custom_api = client.CustomObjectsApi(self.api_client)
        self.version_api = client.VersionApi(self.api_client)
        self.request_timeout_seconds = request_timeout_seconds

    def _call(
        self,
        action: str,
        fn: Callable[..., Any],
        *args: Any,
        creating: bool = False,
        **kwargs: Any,
    ) -> Any:
        kwargs.setdefault("_request_timeout", self.request_timeout_seconds)
        try:
            return fn(*args, **kwargs)
        except ApiException as exc:
            raise from_api_exception(exc, action, creating=creating) from exc
        except urllib3.exceptions.HTTPError as exc:
            raise TransientError(f"{action}: {exc}") from exc

    def _core_method(self, verb: str, kind: ResourceKind, suffix: str = "") -> Callable[..., Any]:
        """Resolve e.g. ``read_namespaced_config_map`` or ``patch_node_status``."""
        if kind.namespaced:
            return getattr(self.core_api, f"{verb}_namespaced_{kind.snake_name}{suffix}")
        return getattr(self.core_api, f"{verb}_{kind.snake_name}{suffix}")

    def _to_dict(self, obj: Any) -> dict[str, Any]:
        if isinstance(obj, dict):
            return obj
        return self.api_client.sanitize_for_serialization(obj)

    @staticmethod
    def _with_type_meta(resource: ManagedResource) -> dict[str, Any]:
        body = dict(resource.body)
        body.setdefault("apiVersion", resource.identity.kind.api_version)
        body.setdefault("kind", resource.identity.kind.kind)
        return body

    def get(self, identity: ResourceIdentity) -> ManagedResource:
        kind = identity.kind
        action = f"get {identity}"
        if kind.group:
            if kind.namespaced:
                body = self._call(
                    action,
                    self.custom_api.get_namespaced_custom_object,
                    kind.group,
                    kind.version,
                    identity.namespace,
                    kind.plural,
                    identity.name,
                )
            else:
                body = self._call(
                    action,
                    self.custom_api.get_cluster_custom_object,
                    kind.group,
                    kind.version,
                    kind.plural,
                    identity.name,
                )
        else:
            kwargs: dict[str, Any] = {"name": identity.name}
            if kind.namespaced:
                kwargs["namespace"] = identity.namespace
            body = self._call(action, self._core_method("read", kind), **kwargs)
        return ManagedResource(identity=identity, body=self._to_dict(body))

    def list(
        self,
        kind: ResourceKind,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> list[ManagedResource]:
        action = f"list {kind.plural}"
        if kind.group:
            if kind.namespaced and namespace:
                result = self._call(
                    action,
                    self.custom_api.list_namespaced_custom_object,
                    kind.group,
                    kind.version,
                    namespace,
                    kind.plural,
                    label_selector=label_selector,
                )
            else:
                result = self._call(
                    action,
                    self.custom_api.list_cluster_custom_object,
                    kind.group,
                    kind.version,
                    kind.plural,
                    label_selector=label_selector,
                )
        elif kind.namespaced and namespace:
            result = self._call(
                action,
                self._core_method("list", kind),
                namespace=namespace,
                label_selector=label_selector,
            )
        elif kind.namespaced:
            result = self._call(
                action,
                getattr(self.core_api, f"list_{kind.snake_name}_for_all_namespaces"),
                label_selector=label_selector,
            )
        else:
            result = self._call(
                action, self._core_method("list", kind), label_selector=label_selector
            )

        items = self._to_dict(result).get("items") or []
        return [ManagedResource.from_body(kind, self._to_dict(item)) for item in items]

    def create(self, resource: ManagedResource) -> ManagedResource:
        identity = resource.identity
        kind = identity.kind
        action = f"create {identity}"
        body = self._with_type_meta(resource)
        if kind.group:
            if kind.namespaced:
                created = self._call(
                    action,
                    self.custom_api.create_namespaced_custom_object,
                    kind.group,
                    kind.version,
                    identity.namespace,
                    kind.plural,
                    body,
                    creating=True,
                )
            else:
                created = self._call(
                    action,
                    self.custom_api.create_cluster_custom_object,
                    kind.group,
                    kind.version,
                    kind.plural,
                    body,
                    creating=True,
                )
        else:
            kwargs: dict[str, Any] = {"body": body}
            if kind.namespaced:
                kwargs["namespace"] = identity.namespace
            created = self._call(
                action, self._core_method("create", kind), creating=True, **kwargs
            )
        return ManagedResource(identity=identity, body=self._to_dict(created))

    def update(self, resource: ManagedResource) -> ManagedResource:
        identity = resource.identity
        kind = identity.kind
        action = f"update {identity}"
        if not resource.resource_version:
            raise FatalError(f"{action}: refusing to update without a resourceVersion")
        body = self._with_type_meta(resource)
        if kind.group:
            if kind.namespaced:
                updated = self._call(
                    action,
                    self.custom_api.replace_namespaced_custom_object,
                    kind.group,
                    kind.version,
                    identity.namespace,
                    kind.plural,
                    identity.name,
                    body,
                )
            else:
                updated = self._call(
                    action,
                    self.custom_api.replace_cluster_custom_object,
                    kind.group,
                    kind.version,
                    kind.plural,
                    identity.name,
                    body,
                )
        else:
            kwargs: dict[str, Any] = {"name": identity.name, "body": body}
            if kind.namespaced:
                kwargs["namespace"] = identity.namespace
            updated = self._call(action, self._core_method("replace", kind), **kwargs)
        return ManagedResource(identity=identity, body=self._to_dict(updated))

    def patch_status(self, resource: ManagedResource) -> ManagedResource:
        """Merge-patch the status subresource.

        The patch carries the caller's resourceVersion, which the API server
        treats as a precondition, so a status patch computed from a stale
        read is rejected with 409 instead of overwriting a newer status.
        """
        identity = resource.identity
        kind = identity.kind
        action = f"patch status of {identity}"
        if not resource.resource_version:
            raise FatalError(f"{action}: refusing to patch without a resourceVersion")
        body = {
            "metadata": {"resourceVersion": resource.resource_version},
            "status": resource.status,
        }
        if kind.group:
            if kind.namespaced:
                patched = self._call(
                    action,
                    self.custom_api.patch_namespaced_custom_object_status,
                    kind.group,
                    kind.version,
                    identity.namespace,
                    kind.plural,
                    identity.name,
                    body,
                    _content_type=MERGE_PATCH,
                )
            else:
                patched = self._call(
                    action,
                    self.custom_api.patch_cluster_custom_object_status,
                    kind.group,
                    kind.version,
                    kind.plural,
                    identity.name,
                    body,
                    _content_type=MERGE_PATCH,
                )
        else:
            kwargs: dict[str, Any] = {"name": identity.name, "body": body}
            if kind.namespaced:
                kwargs["namespace"] = identity.namespace
            patched = self._call(
                action, self._core_method("patch", kind, suffix="_status"), **kwargs
            )
        return ManagedResource(identity=identity, body=self._to_dict(patched))

    def delete(self, identity: ResourceIdentity) -> None:
        kind = identity.kind
        action = f"delete {identity}"
        if kind.group:
            if kind.namespaced:
                self._call(
                    action,
                    self.custom_api.delete_namespaced_custom_object,
                    kind.group,
                    kind.version,
                    identity.namespace,
                    kind.plural,
                    identity.name,
                )
            else:
                self._call(
                    action,
                    self.custom_api.delete_cluster_custom_object,
                    kind.group,
                    kind.version,
                    kind.plural,
                    identity.name,
                )
            return
        kwargs: dict[str, Any] = {"name": identity.name}
        if kind.namespaced:
            kwargs["namespace"] = identity.namespace
        self._call(action, self._core_method("delete", kind), **kwargs)

    def wait_for_cache_sync(
        self, timeout_seconds: float, stop_event: threading.Event | None = None
    ) -> bool:
        """Block until the API server answers, the deadline passes or *stop_event* fires.

        The store reads straight from the API server, so "synced" means the
        server is reachable.  Probes back off from 0.5 s up to 5 s.  Returns
        False as soon as the stop event is set.
        """
        stop = stop_event or threading.Event()
        deadline = time.monotonic() + timeout_seconds
        delay = 0.5
        while not stop.is_set():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            try:
                self.version_api.get_code(_request_timeout=remaining)
                return True
            except (ApiException, urllib3.exceptions.HTTPError) as exc:
                LOGGER.debug("API server not reachable yet: %s", exc)
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            if stop.wait(min(delay, remaining)):
                return False
            delay = min(delay * 2, 5.0)
        return False


def build_store(request_timeout_seconds: float = 30.0) -> KubeObjectStore:
    """Return a :class:`KubeObjectStore` using the active kube configuration."""
    return KubeObjectStore(request_timeout_seconds=request_timeout_seconds)
