"""Storage driver interface and shared helpers.

Every backend persists ``SnapshotRecord`` objects keyed by id and label and
returns them in the lineage order: newest ``created_at`` first, ties broken
by the most recently assigned id.
"""

from __future__ import annotations

import copy
import re
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any, Callable, Optional, Union

from model_snapshot.errors import InvalidSnapshotError
from model_snapshot.models.snapshot import (
    SnapshotFilter,
    SnapshotMeta,
    SnapshotPayload,
    SnapshotRecord,
    ensure_utc,
    utc_now,
)

Clock = Callable[[], datetime]

_NUMERIC_ID = re.compile(r"[0-9]+")


def is_numeric_id(value: str) -> bool:
    return _NUMERIC_ID.fullmatch(value) is not None


def record_sort_key(record: SnapshotRecord) -> tuple:
    """Ascending lineage order: ``created_at``, then id (numerically if possible)."""
    if is_numeric_id(record.id):
        id_key = (0, int(record.id), "")
    else:
        id_key = (1, 0, record.id)
    return (record.created_at, id_key)


def newest_first(records: Iterable[SnapshotRecord]) -> list[SnapshotRecord]:
    return sorted(records, key=record_sort_key, reverse=True)


def resolve_reference(
    records: list[SnapshotRecord], id_or_label: str
) -> Optional[SnapshotRecord]:
    """Picks the record an id-or-label reference points to.

    An exact id match wins. Otherwise the first record carrying the label is
    returned, which is the most recent one when ``records`` is newest first.
    """
    for record in records:
        if record.id == id_or_label:
            return record
    for record in records:
        if record.label == id_or_label:
            return record
    return None


def normalize_payload(
    payload: Union[SnapshotPayload, Mapping[str, Any]],
) -> dict[str, Any]:
    """Returns a private copy of a payload, checking it has attributes.

    Raises:
        InvalidSnapshotError: If the payload has no attributes mapping.
    """
    if isinstance(payload, SnapshotPayload):
        return payload.to_dict()
    if not isinstance(payload, Mapping) or not isinstance(
        payload.get("attributes"), Mapping
    ):
        raise InvalidSnapshotError("Payload must contain an attributes mapping")
    return copy.deepcopy(dict(payload))


class SnapshotStorage(ABC):
    """Abstract interface for persisting snapshot records."""

    def __init__(self, clock: Optional[Clock] = None):
        """Initializes the driver.

        Args:
            clock: Returns the capture time for new records. Defaults to the
                current UTC time.
        """
        self._clock = clock or utc_now

    def now(self) -> datetime:
        return ensure_utc(self._clock())

    @abstractmethod
    def save(
        self,
        label: str,
        payload: Union[SnapshotPayload, Mapping[str, Any]],
        meta: SnapshotMeta,
    ) -> SnapshotRecord:
        """Persists a payload as a new record.

        Args:
            label: Human identifier of the snapshot.
            payload: The serialized state to store.
            meta: Subject identity, event type and caller metadata.

        Returns:
            The stored record with its assigned id and capture time.

        Raises:
            InvalidSnapshotError: If the payload has no attributes mapping.
            StorageIOError: If the backend fails to write.
        """
        pass  # pragma: no cover

    @abstractmethod
    def load(self, id_or_label: str) -> Optional[SnapshotRecord]:
        """Retrieves a record by id or, failing that, by label.

        Args:
            id_or_label: A record id or a label. When several records share
                the label, the most recent one is returned.

        Returns:
            The record, or None if nothing matches.
        """
        pass  # pragma: no cover

    @abstractmethod
    def list(self, filter: Optional[SnapshotFilter] = None) -> list[SnapshotRecord]:
        """Lists records newest first.

        Args:
            filter: Optional predicates and limit.

        Returns:
            The matching records.
        """
        pass  # pragma: no cover

    @abstractmethod
    def delete(self, id_or_label: str) -> bool:
        """Deletes the single record ``load`` would return.

        Returns:
            True if a record existed and was removed.
        """
        pass  # pragma: no cover

    @abstractmethod
    def clear(self, subject_type: Optional[str] = None) -> int:
        """Deletes all records, or all records of one subject type.

        Returns:
            The number of records removed.
        """
        pass  # pragma: no cover

    def find_for_subject(
        self, subject_type: str, subject_id: str, id_or_label: str
    ) -> Optional[SnapshotRecord]:
        """Resolves an id or label within one subject's lineage."""
        records = self.list(
            SnapshotFilter(subject_type=subject_type, subject_id=subject_id)
        )
        return resolve_reference(records, id_or_label)

    def lineage(
        self, subject_type: str, subject_id: str, limit: Optional[int] = None
    ) -> list[SnapshotRecord]:
        """Lists one subject's records newest first."""
        return self.list(
            SnapshotFilter(
                subject_type=subject_type, subject_id=subject_id, limit=limit
            )
        )

    def _build_record(
        self, record_id: str, label: str, payload: dict[str, Any], meta: SnapshotMeta
    ) -> SnapshotRecord:
        return SnapshotRecord(
            id=record_id,
            subject_type=meta.subject_type,
            subject_id=meta.subject_id,
            label=label,
            event_type=meta.event_type,
            payload=payload,
            metadata=copy.deepcopy(meta.metadata),
            created_at=self.now(),
        )


def apply_filter(
    records: Iterable[SnapshotRecord], filter: Optional[SnapshotFilter]
) -> list[SnapshotRecord]:
    """Filters, orders newest first and truncates records in Python."""
    if filter is None:
        return newest_first(records)
    ordered = newest_first(r for r in records if filter.matches(r))
    if filter.limit is not None:
        ordered = ordered[: filter.limit]
    return ordered
