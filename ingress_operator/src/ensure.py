from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import StrEnum

from ingress_operator.src.compare import FieldPath, compare, render_diff
from ingress_operator.src.errors import (
    AlreadyExistsError,
    FatalError,
    NotFoundError,
    StoreError,
)
from ingress_operator.src.metrics import METRICS
from ingress_operator.src.retry import DEFAULT_BACKOFF, Backoff, retry_on_conflict
from ingress_operator.src.store import ManagedResource, ObjectStore, ResourceIdentity

LOGGER = logging.getLogger(__name__)

SPEC_ONLY: tuple[FieldPath, ...] = (("spec",),)


class Action(StrEnum):
    NOOP = "noop"
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


@dataclass(frozen=True)
class ReconcileOutcome:
    """Result of one :func:`ensure` call.

    ``result`` is the resource as the store last returned it, or ``None``
    when the resource does not exist after the call.  ``diff`` is only set
    for updates and is computed against the pre-write copy.
    """

    identity: ResourceIdentity
    action: Action
    result: ManagedResource | None
    diff: str = ""

    @property
    def exists(self) -> bool:
        return self.result is not None

    @property
    def changed(self) -> bool:
        return self.action is not Action.NOOP


def fetch_optional(store: ObjectStore, identity: ResourceIdentity) -> ManagedResource | None:
    """Fetch *identity*, mapping NotFound to ``None``."""
    try:
        return store.get(identity)
    except NotFoundError:
        return None


def record_outcome(outcome: ReconcileOutcome, logger: logging.Logger) -> ReconcileOutcome:
    """Emit the single log record and metric sample for a state-changing outcome."""
    if not outcome.changed:
        return outcome
    extra = {"resource": str(outcome.identity), "action": str(outcome.action)}
    if outcome.action is Action.UPDATED:
        extra["diff"] = outcome.diff
        logger.info("updated %s", outcome.identity, extra=extra)
    else:
        logger.info("%s %s", outcome.action, outcome.identity, extra=extra)
    METRICS.reconcile_actions_total.labels(
        kind=outcome.identity.kind.kind, action=str(outcome.action)
    ).inc()
    return outcome


def _build(
    identity: ResourceIdentity, build_desired: Callable[[], ManagedResource]
) -> ManagedResource:
    try:
        desired = build_desired()
    except StoreError:
        raise
    except Exception as exc:
        raise FatalError(f"failed to build desired {identity}: {exc}") from exc
    if desired.identity != identity:
        raise FatalError(f"desired state for {identity} was built for {desired.identity}")
    if desired.resource_version:
        raise FatalError(f"desired state for {identity} must not carry a resourceVersion")
    return desired


def ensure(
    identity: ResourceIdentity,
    *,
    want_exists: bool,
    fetch: Callable[[], ManagedResource | None],
    build_desired: Callable[[], ManagedResource],
    create: Callable[[ManagedResource], ManagedResource],
    update: Callable[[ManagedResource], ManagedResource],
    delete: Callable[[ResourceIdentity], None],
    owned_fields: Sequence[FieldPath] = SPEC_ONLY,
    backoff: Backoff = DEFAULT_BACKOFF,
    logger: logging.Logger | None = None,
) -> ReconcileOutcome:
    """Drive one resource toward its desired state with a single minimal action.

    ===========  ==========  ==========================================
    want         have        action
    ===========  ==========  ==========================================
    False        False       nothing
    False        True        delete (already gone counts as done)
    True         False       create (losing a create race counts as done)
    True         True        update the owned fields if they drifted
    ===========  ==========  ==========================================

    The update is a read-modify-write under :func:`retry_on_conflict`: the
    first attempt uses the object fetched for the decision, later attempts
    re-fetch.  Store errors other than those races propagate unchanged; the
    periodic driver retries on its next tick.
    """
    log = logger or LOGGER
    current = fetch()

    if not want_exists:
        if current is None:
            return ReconcileOutcome(identity=identity, action=Action.NOOP, result=None)
        try:
            delete(identity)
        except NotFoundError:
            log.debug("%s was already deleted", identity)
            return ReconcileOutcome(identity=identity, action=Action.NOOP, result=None)
        return record_outcome(
            ReconcileOutcome(identity=identity, action=Action.DELETED, result=None), log
        )

    desired = _build(identity, build_desired)

    if current is None:
        try:
            created = create(desired)
        except AlreadyExistsError:
            log.debug("%s was created concurrently; using the existing object", identity)
            return ReconcileOutcome(identity=identity, action=Action.NOOP, result=fetch())
        return record_outcome(
            ReconcileOutcome(identity=identity, action=Action.CREATED, result=created), log
        )

    pending: list[ManagedResource] = [current]

    def _attempt() -> ReconcileOutcome:
        latest = pending.pop() if pending else fetch()
        if latest is None:
            log.debug("%s disappeared before it could be updated", identity)
            return ReconcileOutcome(identity=identity, action=Action.NOOP, result=None)

        changed, merged = compare(latest, desired, owned_fields)
        if not changed or merged is None:
            return ReconcileOutcome(identity=identity, action=Action.NOOP, result=latest)

        # Diff before updating because the store may mutate the object.
        diff = render_diff(latest, merged)
        try:
            updated = update(merged)
        except NotFoundError:
            log.debug("%s disappeared before it could be updated", identity)
            return ReconcileOutcome(identity=identity, action=Action.NOOP, result=None)
        return ReconcileOutcome(
            identity=identity, action=Action.UPDATED, result=updated, diff=diff
        )

    return record_outcome(retry_on_conflict(_attempt, backoff=backoff), log)


def ensure_in_store(
    store: ObjectStore,
    identity: ResourceIdentity,
    *,
    want_exists: bool,
    build_desired: Callable[[], ManagedResource],
    owned_fields: Sequence[FieldPath] = SPEC_ONLY,
    backoff: Backoff = DEFAULT_BACKOFF,
    logger: logging.Logger | None = None,
) -> ReconcileOutcome:
    """:func:`ensure` with every collaborator bound to *store*."""
    return ensure(
        identity,
        want_exists=want_exists,
        fetch=lambda: fetch_optional(store, identity),
        build_desired=build_desired,
        create=store.create,
        update=store.update,
        delete=store.delete,
        owned_fields=owned_fields,
        backoff=backoff,
        logger=logger,
    )
