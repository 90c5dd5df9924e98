"""In-memory implementation of the SnapshotStorage.

Records live in an explicit ``InMemorySnapshotStore`` instance for the
lifetime of the process. Nothing is persisted. Storages built on the same
store share its records, so tests should create a fresh store or call
``reset`` between scenarios.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Optional, Union

from model_snapshot.models.snapshot import (
    SnapshotFilter,
    SnapshotMeta,
    SnapshotPayload,
    SnapshotRecord,
)
from model_snapshot.observability.logging import get_logger
from model_snapshot.storage.base import (
    Clock,
    SnapshotStorage,
    apply_filter,
    newest_first,
    normalize_payload,
    resolve_reference,
)

logger = get_logger(__name__)


class InMemorySnapshotStore:
    """Backing state for in-memory storages. Not synchronized."""

    def __init__(self):
        """Initializes an empty store."""
        self.records: dict[str, SnapshotRecord] = {}
        self._next_id = 1

    def allocate_id(self) -> str:
        record_id = str(self._next_id)
        self._next_id += 1
        return record_id

    def reset(self):
        """Drops every record and restarts id allocation."""
        self.records.clear()
        self._next_id = 1


class InMemorySnapshotStorage(SnapshotStorage):
    """Process-lifetime storage useful for unit tests and local development."""

    def __init__(
        self,
        store: Optional[InMemorySnapshotStore] = None,
        clock: Optional[Clock] = None,
    ):
        """Initializes the storage.

        Args:
            store: The backing store. A private one is created if omitted.
            clock: Returns the capture time for new records.
        """
        super().__init__(clock)
        self.store = store if store is not None else InMemorySnapshotStore()

    def reset(self):
        """Empties the backing store."""
        self.store.reset()

    def save(
        self,
        label: str,
        payload: Union[SnapshotPayload, Mapping[str, Any]],
        meta: SnapshotMeta,
    ) -> SnapshotRecord:
        """Stores a private copy of the payload as a new record."""
        data = normalize_payload(payload)
        record = self._build_record(self.store.allocate_id(), label, data, meta)
        self.store.records[record.id] = record
        logger.debug(f"Stored snapshot {record.id} in memory")
        return record.model_copy(deep=True)

    def load(self, id_or_label: str) -> Optional[SnapshotRecord]:
        """Retrieves a copy of a record by id, then by most recent label."""
        record = self.store.records.get(id_or_label)
        if record is None:
            record = resolve_reference(
                newest_first(self.store.records.values()), id_or_label
            )
        return record.model_copy(deep=True) if record else None

    def list(self, filter: Optional[SnapshotFilter] = None) -> list[SnapshotRecord]:
        """Lists copies of the matching records, newest first."""
        return [
            r.model_copy(deep=True)
            for r in apply_filter(self.store.records.values(), filter)
        ]

    def delete(self, id_or_label: str) -> bool:
        """Deletes the record ``load`` resolves to."""
        record = self.load(id_or_label)
        if record is None:
            return False
        return self.store.records.pop(record.id, None) is not None

    def clear(self, subject_type: Optional[str] = None) -> int:
        """Deletes all records, or those of one subject type."""
        if subject_type is None:
            count = len(self.store.records)
            self.store.records.clear()
            return count

        doomed = [
            record_id
            for record_id, record in self.store.records.items()
            if record.subject_type == subject_type
        ]
        for record_id in doomed:
            del self.store.records[record_id]
        return len(doomed)
