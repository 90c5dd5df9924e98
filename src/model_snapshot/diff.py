"""Diff engine.

Computes the field-level delta between the ``attributes`` of two payloads.
Relationships are never descended into.
"""

from collections.abc import Mapping
from typing import Any, Union

from model_snapshot.errors import InvalidSnapshotError
from model_snapshot.models.results import DiffResult, FieldChange
from model_snapshot.models.snapshot import SnapshotPayload, SnapshotRecord

PayloadLike = Union[SnapshotRecord, SnapshotPayload, Mapping[str, Any]]


def values_equal(a: Any, b: Any) -> bool:
    """Deep structural equality that does not treat booleans as integers."""
    if isinstance(a, bool) or isinstance(b, bool):
        return type(a) is type(b) and a == b
    if isinstance(a, Mapping) and isinstance(b, Mapping):
        return a.keys() == b.keys() and all(values_equal(a[k], b[k]) for k in a)
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        return len(a) == len(b) and all(values_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, (Mapping, list, tuple)) or isinstance(b, (Mapping, list, tuple)):
        return False
    return a == b


def payload_attributes(payload: PayloadLike) -> Mapping[str, Any]:
    """Extracts the attribute mapping from any payload representation.

    Raises:
        InvalidSnapshotError: If the payload has no attribute mapping.
    """
    if isinstance(payload, SnapshotRecord):
        source = payload.payload
        where = f"snapshot '{payload.label}' ({payload.id})"
    elif isinstance(payload, SnapshotPayload):
        return payload.attributes
    else:
        source = payload
        where = "payload"

    attributes = source.get("attributes") if isinstance(source, Mapping) else None
    if not isinstance(attributes, Mapping):
        raise InvalidSnapshotError(f"The {where} has no attributes mapping")
    return attributes


def compute_diff(payload_a: PayloadLike, payload_b: PayloadLike) -> DiffResult:
    """Computes the delta that turns ``payload_a`` into ``payload_b``.

    Args:
        payload_a: The earlier (or reference) payload.
        payload_b: The later (or compared) payload.

    Returns:
        A DiffResult with fields added in B, removed from A and modified
        between the two, each group in lexicographic key order.
    """
    attrs_a = payload_attributes(payload_a)
    attrs_b = payload_attributes(payload_b)

    added: dict[str, Any] = {}
    modified: dict[str, FieldChange] = {}
    removed: dict[str, Any] = {}

    for key in sorted(set(attrs_a) | set(attrs_b)):
        if key not in attrs_a:
            added[key] = attrs_b[key]
        elif key not in attrs_b:
            removed[key] = attrs_a[key]
        elif not values_equal(attrs_a[key], attrs_b[key]):
            modified[key] = FieldChange(from_=attrs_a[key], to=attrs_b[key])

    return DiffResult(added=added, modified=modified, removed=removed)
