"""Serialization engine.

Turns a ``SnapshotSubject`` into a ``SnapshotPayload`` whose values are all
JSON-compatible, so payloads can be compared structurally and stored by any
backend without losing fidelity.
"""

import json
import math
from collections.abc import Iterable, Mapping
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from pathlib import PurePath
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel

from model_snapshot.config import SerializationOptions
from model_snapshot.errors import SerializationError
from model_snapshot.models.snapshot import SnapshotPayload
from model_snapshot.subject import SnapshotSubject, subject_type_name


def _sort_key(value: Any) -> str:
    return json.dumps(value, sort_keys=True)


def to_snapshot_value(value: Any, path: str = "value", _seen: frozenset = frozenset()) -> Any:
    """Converts a raw field value into a structurally comparable value.

    Args:
        value: The raw value read from the subject.
        path: Dotted location of the value, used in error messages.

    Returns:
        A value made only of dicts, lists, strings, numbers, booleans and
        None.

    Raises:
        SerializationError: If the value, or anything nested in it, has no
            structural representation.
    """
    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, Enum):
        return to_snapshot_value(value.value, path, _seen)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise SerializationError(f"Field '{path}' holds a non-finite float")
        return value
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, (Decimal, UUID, PurePath)):
        return str(value)
    if isinstance(value, SnapshotSubject):
        raise SerializationError(
            f"Field '{path}' holds a live {type(value).__name__} reference; "
            "declare it in __snapshot_relationships__ instead"
        )
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")

    if isinstance(value, (Mapping, list, tuple, set, frozenset)):
        if id(value) in _seen:
            raise SerializationError(f"Field '{path}' contains a circular reference")
        seen = _seen | {id(value)}

        if isinstance(value, Mapping):
            result = {}
            for key, item in value.items():
                if isinstance(key, Enum):
                    key = key.value
                if not isinstance(key, str):
                    raise SerializationError(
                        f"Field '{path}' has a non-string key {key!r}"
                    )
                result[key] = to_snapshot_value(item, f"{path}.{key}", seen)
            return result

        items = [
            to_snapshot_value(item, f"{path}[{i}]", seen)
            for i, item in enumerate(value)
        ]
        if isinstance(value, (set, frozenset)):
            items.sort(key=_sort_key)
        return items

    raise SerializationError(
        f"Field '{path}' has unsupported type {type(value).__name__}"
    )


class SnapshotSerializer:
    """Produces payloads from subjects according to ``SerializationOptions``."""

    def __init__(self, options: Optional[SerializationOptions] = None):
        self.options = options or SerializationOptions()

    def serialize(
        self,
        subject: SnapshotSubject,
        options: Optional[SerializationOptions] = None,
    ) -> SnapshotPayload:
        """Serializes a subject.

        Args:
            subject: The domain object to capture.
            options: Overrides the serializer's default options.

        Returns:
            The payload describing the subject's current state.

        Raises:
            SerializationError: If the subject or a field cannot be captured.
        """
        return self._serialize(subject, options or self.options, depth=0)

    def _serialize(
        self, subject: Any, options: SerializationOptions, depth: int
    ) -> SnapshotPayload:
        if not isinstance(subject, SnapshotSubject):
            raise SerializationError(
                f"{type(subject).__name__} is not a SnapshotSubject"
            )

        cls = type(subject)
        skipped = set(options.exclude_fields)
        if not options.include_hidden:
            skipped.update(cls.__snapshot_hidden__)
        relationship_names = [
            name for name in cls.__snapshot_relationships__ if name not in skipped
        ]
        timestamp_names = set(cls.__snapshot_timestamps__)

        attributes: dict[str, Any] = {}
        timestamps: dict[str, Any] = {}
        for name, value in subject.snapshot_fields().items():
            if name in skipped or name in cls.__snapshot_relationships__:
                continue
            if name in timestamp_names:
                if options.include_timestamps:
                    timestamps[name] = to_snapshot_value(value, f"timestamps.{name}")
                continue
            attributes[name] = to_snapshot_value(value, f"attributes.{name}")

        payload = SnapshotPayload(attributes=attributes)
        if options.include_timestamps:
            payload.timestamps = timestamps

        # The cutoff omits the whole section rather than a partial one.
        if (
            options.include_relationships
            and relationship_names
            and depth < options.max_relationship_depth
        ):
            payload.relationships = {
                name: self._serialize_related(
                    subject, name, getattr(subject, name, None), options, depth + 1
                )
                for name in relationship_names
            }
        return payload

    def _serialize_related(
        self,
        owner: SnapshotSubject,
        name: str,
        related: Any,
        options: SerializationOptions,
        depth: int,
    ):
        if related is None:
            return None
        if isinstance(related, SnapshotSubject):
            return self._serialize(related, options, depth)
        if isinstance(related, Iterable) and not isinstance(related, (str, bytes, Mapping)):
            items = []
            for item in related:
                if not isinstance(item, SnapshotSubject):
                    raise SerializationError(
                        f"Relationship '{name}' of {subject_type_name(owner)} "
                        f"contains a {type(item).__name__}, not a SnapshotSubject"
                    )
                items.append(self._serialize(item, options, depth))
            return items
        raise SerializationError(
            f"Relationship '{name}' of {subject_type_name(owner)} has "
            f"unsupported type {type(related).__name__}"
        )
