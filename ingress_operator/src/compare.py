from __future__ import annotations

import copy
import difflib
import json
from collections.abc import Sequence
from typing import Any

from ingress_operator.src.store import ManagedResource

FieldPath = tuple[str, ...]

_MISSING = object()


def normalize(value: Any) -> Any:
    """Return *value* with empty containers and ``None`` folded away.

    ``None``, ``{}`` and ``[]`` all mean "unset" on the wire, and the API
    server is free to return any of them (or drop the key) for a field we
    wrote as empty.  Folding them keeps a re-derived default from looking
    like drift.  Dict keys with an unset value are dropped; an unset value
    at the top level normalizes to ``None``.
    """
    if isinstance(value, dict):
        folded = {}
        for key, item in value.items():
            normalized = normalize(item)
            if normalized is not None:
                folded[key] = normalized
        return folded or None
    if isinstance(value, list):
        items = [normalize(item) for item in value]
        return items or None
    return value


def equal(left: Any, right: Any) -> bool:
    return normalize(left) == normalize(right)


def get_path(body: dict[str, Any], path: FieldPath) -> Any:
    node: Any = body
    for key in path:
        if not isinstance(node, dict) or key not in node:
            return _MISSING
        node = node[key]
    return node


def _set_path(body: dict[str, Any], path: FieldPath, value: Any) -> None:
    node = body
    for key in path[:-1]:
        child = node.get(key)
        if not isinstance(child, dict):
            child = {}
            node[key] = child
        node = child
    if value is _MISSING:
        node.pop(path[-1], None)
    else:
        node[path[-1]] = copy.deepcopy(value)


def compare(
    current: ManagedResource,
    desired: ManagedResource,
    owned_fields: Sequence[FieldPath],
) -> tuple[bool, ManagedResource | None]:
    """Compare the fields *desired* owns against *current*.

    Returns ``(False, None)`` when every owned field already matches, and
    ``(True, merged)`` otherwise.  ``merged`` is a deep copy of *current*
    (resourceVersion and every field nobody asked us to own included) with
    only the owned paths taken from *desired*, so writing it back cannot
    clobber fields maintained by other controllers.

    An empty *owned_fields* means existence is all that is managed.
    """
    changed_paths = [
        path
        for path in owned_fields
        if not equal(_value(current.body, path), _value(desired.body, path))
    ]
    if not changed_paths:
        return False, None

    merged = current.deep_copy()
    for path in changed_paths:
        _set_path(merged.body, path, get_path(desired.body, path))
    return True, merged


def _value(body: dict[str, Any], path: FieldPath) -> Any:
    value = get_path(body, path)
    return None if value is _MISSING else value


def render_diff(before: ManagedResource, after: ManagedResource) -> str:
    """Return a unified diff of two resource bodies after normalization."""
    before_lines = _pretty(before.body).splitlines(keepends=True)
    after_lines = _pretty(after.body).splitlines(keepends=True)
    return "".join(
        difflib.unified_diff(before_lines, after_lines, fromfile="current", tofile="updated")
    )


def _pretty(body: dict[str, Any]) -> str:
    return json.dumps(normalize(body) or {}, indent=2, sort_keys=True, default=str) + "\n"
