from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass


class ConfigError(RuntimeError):
    """Raised when the operator configuration is invalid."""


@dataclass(frozen=True)
class OperatorConfig:
    """Immutable operator configuration loaded at startup.

    Attributes:
        namespace:         Namespace the operator runs in and where the
                           default IngressController and trusted CA
                           configmap live.
        operand_namespace: Namespace of the router deployments.
        reconcile_interval_seconds: Period of every reconcile driver.
        cache_sync_timeout_seconds: How long a tick waits for the store to
                           report itself synced before skipping.  Must not
                           exceed the reconcile interval.
        gateway_api_enabled: Whether the service mesh subscription is wanted.
        use_cache:         Read policy for the object store.  Only the
                           uncached mode is implemented; the knob exists so
                           the choice is explicit rather than a hidden default.
        health_port:       Port of the health/metrics HTTP server.
    """

    namespace: str = "openshift-ingress-operator"
    operand_namespace: str = "openshift-ingress"
    reconcile_interval_seconds: int = 60
    cache_sync_timeout_seconds: int = 30
    gateway_api_enabled: bool = False
    use_cache: bool = False
    health_port: int = 8080


def parse_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def env_int(
    values: Mapping[str, str],
    name: str,
    default: int,
    *,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int:
    raw = values.get(name)
    if raw is None:
        value = default
    else:
        try:
            value = int(raw)
        except ValueError as exc:
            raise ConfigError(f"{name} must be an integer") from exc

    if minimum is not None and value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got: {value}")
    if maximum is not None and value > maximum:
        raise ConfigError(f"{name} must be <= {maximum}, got: {value}")
    return value


def _non_empty(values: Mapping[str, str], name: str, default: str) -> str:
    value = values.get(name, default)
    if not value.strip():
        raise ConfigError(f"{name} must be a non-empty string")
    return value.strip()


def load_config(env: Mapping[str, str] | None = None) -> OperatorConfig:
    """Load operator config from the environment.

    Environment variables (with defaults):
        ``OPERATOR_NAMESPACE``          (``openshift-ingress-operator``)
        ``OPERAND_NAMESPACE``           (``openshift-ingress``)
        ``RECONCILE_INTERVAL_SECONDS``  (``60``)
        ``CACHE_SYNC_TIMEOUT_SECONDS``  (``30``)
        ``GATEWAY_API_ENABLED``         (``false``)
        ``USE_CACHE``                   (``false``; ``true`` is rejected)
        ``HEALTH_PORT``                 (``8080``)
    """
    values = env if env is not None else os.environ

    use_cache = parse_bool(values.get("USE_CACHE"))
    if use_cache:
        raise ConfigError(
            "USE_CACHE=true is not supported: the operator reads the API server "
            "directly because callers may not tolerate stale reads after writes"
        )

    interval = env_int(values, "RECONCILE_INTERVAL_SECONDS", 60, minimum=1)
    cache_sync_timeout = env_int(values, "CACHE_SYNC_TIMEOUT_SECONDS", 30, minimum=1)
    # A gate may not outlast the tick it guards.
    if cache_sync_timeout > interval:
        raise ConfigError(
            "CACHE_SYNC_TIMEOUT_SECONDS must be <= RECONCILE_INTERVAL_SECONDS, "
            f"got: {cache_sync_timeout} > {interval}"
        )

    return OperatorConfig(
        namespace=_non_empty(values, "OPERATOR_NAMESPACE", OperatorConfig.namespace),
        operand_namespace=_non_empty(
            values, "OPERAND_NAMESPACE", OperatorConfig.operand_namespace
        ),
        reconcile_interval_seconds=interval,
        cache_sync_timeout_seconds=cache_sync_timeout,
        gateway_api_enabled=parse_bool(values.get("GATEWAY_API_ENABLED")),
        use_cache=use_cache,
        health_port=env_int(values, "HEALTH_PORT", 8080, minimum=1, maximum=65535),
    )
