from __future__ import annotations

from typing import Any

import pytest

from ingress_operator.src.errors import ConflictError, TransientError
from ingress_operator.src.retry import Backoff
from ingress_operator.src.store import (
    INFRASTRUCTURE,
    INGRESS_CONFIG,
    NODE,
    ManagedResource,
    ResourceIdentity,
    cluster_config,
)
from ingress_operator.src.topology import (
    PLACEMENT_CONTROL_PLANE,
    PLACEMENT_WORKERS,
    choose_default_placement,
    ensure_default_placement,
)
from ingress_operator.tests.fakes import FakeObjectStore

NO_WAIT = Backoff(duration=0, jitter=0)
INGRESS = cluster_config(INGRESS_CONFIG)


def infrastructure(
    control_plane: str = "SingleReplica",
    infra: str = "SingleReplica",
    platform: str = "None",
) -> ManagedResource:
    return ManagedResource.build(
        cluster_config(INFRASTRUCTURE),
        status={
            "controlPlaneTopology": control_plane,
            "infrastructureTopology": infra,
            "platformStatus": {"type": platform},
        },
    )


def make_store(
    infra: ManagedResource,
    nodes: int = 1,
    ingress_status: dict[str, Any] | None = None,
) -> FakeObjectStore:
    store = FakeObjectStore()
    store.seed(infra)
    store.seed(ManagedResource.build(INGRESS, spec={"domain": "apps.example.com"}, status=ingress_status or {}))
    for index in range(nodes):
        store.seed(ManagedResource.build(ResourceIdentity(kind=NODE, name=f"node-{index}")))
    return store


@pytest.mark.parametrize(
    ("infra", "nodes", "expected"),
    [
        (infrastructure(), 1, PLACEMENT_CONTROL_PLANE),
        (infrastructure(), 2, PLACEMENT_WORKERS),
        (infrastructure(), 0, PLACEMENT_WORKERS),
        (infrastructure(platform="AWS"), 1, PLACEMENT_WORKERS),
        (infrastructure(control_plane="HighlyAvailable"), 1, PLACEMENT_WORKERS),
        (infrastructure(infra="HighlyAvailable"), 1, PLACEMENT_WORKERS),
    ],
)
def test_choose_default_placement(infra: ManagedResource, nodes: int, expected: str) -> None:
    assert choose_default_placement(infra, nodes) == expected


def test_already_set_placement_is_never_written() -> None:
    store = make_store(infrastructure(), nodes=3, ingress_status={"defaultPlacement": "Workers"})

    assert ensure_default_placement(store, backoff=NO_WAIT) is None

    assert store.writes() == []
    # The node list is not even needed.
    assert ("list", NODE) not in store.calls


def test_single_node_none_platform_gets_control_plane() -> None:
    store = make_store(infrastructure(), nodes=1)

    assert ensure_default_placement(store, backoff=NO_WAIT) == PLACEMENT_CONTROL_PLANE

    assert store.objects[INGRESS]["status"]["defaultPlacement"] == PLACEMENT_CONTROL_PLANE
    assert store.objects[INGRESS]["spec"] == {"domain": "apps.example.com"}
    assert store.writes() == [("patch_status", INGRESS)]


def test_other_clusters_get_workers_and_second_run_is_noop() -> None:
    store = make_store(infrastructure(platform="BareMetal"), nodes=1)

    assert ensure_default_placement(store, backoff=NO_WAIT) == PLACEMENT_WORKERS
    assert ensure_default_placement(store, backoff=NO_WAIT) is None

    assert store.writes() == [("patch_status", INGRESS)]


def test_conflicting_patch_is_retried_on_fresh_read() -> None:
    store = make_store(infrastructure(), nodes=1)
    store.conflicts[INGRESS] = 2

    assert ensure_default_placement(store, backoff=NO_WAIT) == PLACEMENT_CONTROL_PLANE

    assert store.writes() == [("patch_status", INGRESS)] * 3


def test_placement_set_concurrently_is_left_alone() -> None:
    store = make_store(infrastructure(), nodes=1)

    def _other_writer(verb: str, identity: ResourceIdentity) -> None:
        if not store.objects[identity].get("status", {}).get("defaultPlacement"):
            body = dict(store.objects[identity])
            body["status"] = {"defaultPlacement": PLACEMENT_WORKERS}
            store.seed(ManagedResource(identity=identity, body=body))

    store.before_write = _other_writer

    assert ensure_default_placement(store, backoff=NO_WAIT) is None

    assert store.objects[INGRESS]["status"]["defaultPlacement"] == PLACEMENT_WORKERS
    assert len(store.writes()) == 1


def test_exhausted_conflicts_surface_with_context() -> None:
    store = make_store(infrastructure(), nodes=1)
    store.conflicts[INGRESS] = 100

    with pytest.raises(ConflictError, match="unable to update ingress config 'cluster'"):
        ensure_default_placement(store, backoff=NO_WAIT)


def test_read_failures_propagate() -> None:
    store = make_store(infrastructure(), nodes=1)
    store.errors["list"] = TransientError("unavailable", status=503)

    with pytest.raises(TransientError):
        ensure_default_placement(store, backoff=NO_WAIT)

    assert store.writes() == []
