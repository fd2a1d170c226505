from __future__ import annotations

import json

from kubernetes.client import ApiException


class StoreError(RuntimeError):
    """Base class for failures talking to the object store.

    ``status`` carries the HTTP status code when the failure came from an
    API response, and is ``None`` for transport-level failures.
    """

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class NotFoundError(StoreError):
    """The addressed resource does not exist."""


class AlreadyExistsError(StoreError):
    """A create lost the race against another writer of the same identity."""


class ConflictError(StoreError):
    """A write carried a stale resourceVersion and was rejected."""


class TransientError(StoreError):
    """The store is unavailable or throttling; the next tick may succeed."""


class FatalError(StoreError):
    """A desired-state computation produced something that cannot be written."""


_TRANSIENT_STATUSES = frozenset({429, 500, 502, 503, 504})


def _status_reason(exc: ApiException) -> str | None:
    """Return the ``reason`` of the Kubernetes ``Status`` object in the body, if any."""
    body = getattr(exc, "body", None)
    if not body:
        return None
    try:
        payload = json.loads(body)
    except (TypeError, ValueError):
        return None
    if not isinstance(payload, dict):
        return None
    reason = payload.get("reason")
    return reason if isinstance(reason, str) else None


def from_api_exception(exc: ApiException, action: str, *, creating: bool = False) -> StoreError:
    """Translate a kubernetes ``ApiException`` into the store error taxonomy.

    A 409 is ambiguous on the wire (both "AlreadyExists" and "Conflict"
    use it), so the ``Status`` reason decides, and a 409 on create is
    always treated as AlreadyExists.
    """
    status = exc.status
    message = f"{action}: {exc.status} {exc.reason}"
    if status == 404:
        return NotFoundError(message, status=status)
    if status == 409:
        if creating or _status_reason(exc) == "AlreadyExists":
            return AlreadyExistsError(message, status=status)
        return ConflictError(message, status=status)
    if status in _TRANSIENT_STATUSES or status == 0 or status is None:
        return TransientError(message, status=status)
    return StoreError(message, status=status)
