from __future__ import annotations

import logging
from unittest.mock import MagicMock

import pytest

from ingress_operator.src.ensure import (
    Action,
    ensure,
    ensure_in_store,
    fetch_optional,
)
from ingress_operator.src.errors import (
    ConflictError,
    FatalError,
    NotFoundError,
    TransientError,
)
from ingress_operator.src.retry import Backoff
from ingress_operator.src.store import SUBSCRIPTION, ManagedResource, ResourceIdentity
from ingress_operator.tests.fakes import FakeObjectStore

IDENTITY = ResourceIdentity(kind=SUBSCRIPTION, name="servicemeshoperator", namespace="openshift-operators")
NO_WAIT = Backoff(duration=0, jitter=0, steps=4)


def desired(channel: str = "stable") -> ManagedResource:
    return ManagedResource.build(IDENTITY, spec={"channel": channel, "name": "servicemeshoperator"})


def run(store: FakeObjectStore, want_exists: bool = True, channel: str = "stable", **kwargs: object):
    return ensure_in_store(
        store,
        IDENTITY,
        want_exists=want_exists,
        build_desired=lambda: desired(channel),
        backoff=NO_WAIT,
        **kwargs,  # type: ignore[arg-type]
    )


# ---------------------------------------------------------------------------
# Decision table
# ---------------------------------------------------------------------------


def test_absent_and_unwanted_is_noop() -> None:
    store = FakeObjectStore()

    outcome = run(store, want_exists=False)

    assert outcome.action is Action.NOOP
    assert outcome.result is None
    assert store.writes() == []


def test_unwanted_existing_resource_is_deleted_then_noop() -> None:
    store = FakeObjectStore()
    store.seed(desired())

    first = run(store, want_exists=False)
    second = run(store, want_exists=False)

    assert first.action is Action.DELETED
    assert first.exists is False
    assert second.action is Action.NOOP
    assert store.writes() == [("delete", IDENTITY)]


def test_not_found_on_delete_counts_as_satisfied() -> None:
    calls: list[str] = []

    def _delete(identity: ResourceIdentity) -> None:
        calls.append("delete")
        raise NotFoundError("gone", status=404)

    outcome = ensure(
        IDENTITY,
        want_exists=False,
        fetch=lambda: desired(),
        build_desired=desired,
        create=MagicMock(),
        update=MagicMock(),
        delete=_delete,
    )

    assert outcome.action is Action.NOOP
    assert outcome.result is None
    assert calls == ["delete"]


def test_missing_resource_is_created_with_exact_desired_payload_then_noop() -> None:
    store = FakeObjectStore()

    first = run(store)
    second = run(store)

    assert first.action is Action.CREATED
    assert first.result is not None
    stored = store.objects[IDENTITY]
    assert stored["spec"] == desired().spec
    assert stored["metadata"]["name"] == "servicemeshoperator"
    assert stored["kind"] == "Subscription"
    assert second.action is Action.NOOP
    assert store.writes() == [("create", IDENTITY)]


def test_lost_create_race_resolves_to_winners_object() -> None:
    store = FakeObjectStore()
    winner = desired("winner")

    def _other_writer_creates_first(verb: str, identity: ResourceIdentity) -> None:
        if verb == "create" and identity not in store.objects:
            store.seed(winner)

    store.before_write = _other_writer_creates_first

    outcome = run(store)

    assert outcome.action is Action.NOOP
    assert outcome.result is not None
    assert outcome.result.spec["channel"] == "winner"
    assert len([obj for obj in store.objects if obj == IDENTITY]) == 1


def test_drifted_owned_fields_are_updated_and_others_preserved() -> None:
    store = FakeObjectStore()
    existing = desired("fast")
    existing.body["metadata"]["labels"] = {"olm.managed": "true"}
    existing.body["status"] = {"state": "AtLatestKnown"}
    store.seed(existing)

    outcome = run(store, channel="stable")

    assert outcome.action is Action.UPDATED
    assert outcome.result is not None
    assert outcome.result.spec == desired("stable").spec
    assert outcome.result.labels == {"olm.managed": "true"}
    assert outcome.result.status == {"state": "AtLatestKnown"}
    assert '+    "channel": "stable"' in outcome.diff
    assert run(store).action is Action.NOOP


def test_equivalent_empty_fields_do_not_trigger_update() -> None:
    store = FakeObjectStore()
    existing = desired()
    existing.body["spec"]["config"] = {}
    existing.body["spec"]["selector"] = None
    store.seed(existing)

    outcome = run(store)

    assert outcome.action is Action.NOOP
    assert store.writes() == []


def test_update_conflict_is_retried_with_fresh_read() -> None:
    store = FakeObjectStore()
    store.seed(desired("fast"))
    store.conflicts[IDENTITY] = 2

    outcome = run(store)

    assert outcome.action is Action.UPDATED
    assert [verb for verb, _ in store.writes()] == ["update", "update", "update"]
    gets = [verb for verb, _ in store.calls if verb == "get"]
    # One read for the decision, then one fresh read per retried attempt.
    assert len(gets) == 3


def test_concurrent_writer_converging_first_ends_in_noop() -> None:
    store = FakeObjectStore()
    store.seed(desired("fast"))

    def _other_writer(verb: str, identity: ResourceIdentity) -> None:
        if verb == "update" and store.objects[identity]["spec"]["channel"] == "fast":
            store.seed(desired("stable"))

    store.before_write = _other_writer

    outcome = run(store)

    assert outcome.action is Action.NOOP
    assert outcome.result is not None
    assert outcome.result.spec["channel"] == "stable"


def test_conflicts_beyond_attempt_limit_surface() -> None:
    store = FakeObjectStore()
    store.seed(desired("fast"))
    store.conflicts[IDENTITY] = 10

    with pytest.raises(ConflictError):
        run(store)

    assert len(store.writes()) == NO_WAIT.steps


def test_resource_deleted_during_update_is_noop_without_result() -> None:
    store = FakeObjectStore()
    store.seed(desired("fast"))

    def _deleter(verb: str, identity: ResourceIdentity) -> None:
        store.objects.pop(identity, None)

    store.before_write = _deleter

    outcome = run(store)

    assert outcome.action is Action.NOOP
    assert outcome.result is None


def test_transient_errors_propagate_unmodified() -> None:
    store = FakeObjectStore()
    error = TransientError("api server unavailable", status=503)
    store.errors["create"] = error

    with pytest.raises(TransientError) as excinfo:
        run(store)

    assert excinfo.value is error


def test_broken_desired_state_is_fatal() -> None:
    store = FakeObjectStore()

    def _broken() -> ManagedResource:
        raise KeyError("replicas")

    with pytest.raises(FatalError, match="failed to build desired"):
        ensure_in_store(store, IDENTITY, want_exists=True, build_desired=_broken)

    assert store.writes() == []


def test_desired_state_for_wrong_identity_is_fatal() -> None:
    store = FakeObjectStore()
    other = ResourceIdentity(kind=SUBSCRIPTION, name="other", namespace="openshift-operators")

    with pytest.raises(FatalError):
        ensure_in_store(
            store,
            IDENTITY,
            want_exists=True,
            build_desired=lambda: ManagedResource.build(other),
        )


def test_build_desired_not_called_when_unwanted() -> None:
    build = MagicMock()

    ensure(
        IDENTITY,
        want_exists=False,
        fetch=lambda: None,
        build_desired=build,
        create=MagicMock(),
        update=MagicMock(),
        delete=MagicMock(),
    )

    build.assert_not_called()


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


def test_one_record_per_state_change_and_none_for_noop(caplog: pytest.LogCaptureFixture) -> None:
    store = FakeObjectStore()
    logger = logging.getLogger("test.ensure.events")

    with caplog.at_level(logging.INFO, logger="test.ensure.events"):
        run(store, logger=logger)
        run(store, logger=logger)
        run(store, channel="fast", logger=logger)
        run(store, want_exists=False, logger=logger)

    records = [r for r in caplog.records if r.name == "test.ensure.events"]
    assert [r.action for r in records] == ["created", "updated", "deleted"]  # type: ignore[attr-defined]
    assert all(r.resource == str(IDENTITY) for r in records)  # type: ignore[attr-defined]
    assert '"channel": "fast"' in records[1].diff  # type: ignore[attr-defined]


def test_fetch_optional_maps_not_found_to_none() -> None:
    store = FakeObjectStore()

    assert fetch_optional(store, IDENTITY) is None
    store.seed(desired())
    resource = fetch_optional(store, IDENTITY)
    assert resource is not None
    assert resource.resource_version is not None
