"""Data models for the outcomes of diff, restore, batch and stats operations."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from model_snapshot.models.snapshot import SnapshotRecord


class FieldChange(BaseModel):
    """A field present on both sides of a diff with unequal values.

    Attributes:
        from_: The value in the first payload (serialized as ``from``).
        to: The value in the second payload.
    """

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    from_: Any = Field(..., alias="from", description="Value before.")
    to: Any = Field(..., description="Value after.")

    def to_dict(self) -> dict[str, Any]:
        return {"from": self.from_, "to": self.to}


class DiffResult(BaseModel):
    """Field-level delta between two payloads.

    Keys in every group are kept in lexicographic order so that the same two
    payloads always produce the same result.

    Attributes:
        added: Fields present only in the second payload, with their value.
        modified: Fields present in both with unequal values.
        removed: Fields present only in the first payload, with their value.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    added: dict[str, Any] = Field(default_factory=dict)
    modified: dict[str, FieldChange] = Field(default_factory=dict)
    removed: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.modified or self.removed)

    @property
    def changed_fields(self) -> list[str]:
        return sorted({*self.added, *self.modified, *self.removed})

    def to_dict(self) -> dict[str, Any]:
        return {
            "added": dict(self.added),
            "modified": {k: v.to_dict() for k, v in self.modified.items()},
            "removed": dict(self.removed),
        }


class RestoreOutcome(BaseModel):
    """The result of restoring a live subject from a snapshot.

    Attributes:
        restored: Whether the subject's own persistence step succeeded.
        snapshot_id: The id of the record that was applied.
        label: The label of the record that was applied.
        changes: Fields whose live value differed from the snapshot value
            before the restore was applied.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    restored: bool
    snapshot_id: str
    label: str
    changes: dict[str, FieldChange] = Field(default_factory=dict)


class BatchCaptureResult(BaseModel):
    """Summary of a scheduled capture over many subjects.

    Attributes:
        created: Number of snapshots stored.
        failed: Number of subjects whose capture raised.
        records: The stored records, in capture order.
        errors: Error detail for every failed capture, keyed ``<type>#<id>``.
    """

    model_config = ConfigDict(extra="forbid")

    created: int = 0
    failed: int = 0
    records: list[SnapshotRecord] = Field(default_factory=list)
    errors: dict[str, str] = Field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.failed == 0


class SnapshotStatistics(BaseModel):
    """Aggregates computed over stored snapshot history.

    Attributes:
        subject_type: The subject type the statistics were scoped to, if any.
        subject_id: The subject id the statistics were scoped to, if any.
        total_snapshots: Number of matching records.
        snapshots_by_event: Event type value to record count.
        changes_by_day: ISO date to record count, newest day first.
        most_changed_fields: Field name to number of consecutive captures in
            which it changed, most changed first.
    """

    model_config = ConfigDict(extra="forbid")

    subject_type: Optional[str] = None
    subject_id: Optional[str] = None
    total_snapshots: int = 0
    snapshots_by_event: dict[str, int] = Field(default_factory=dict)
    changes_by_day: dict[str, int] = Field(default_factory=dict)
    most_changed_fields: dict[str, int] = Field(default_factory=dict)
