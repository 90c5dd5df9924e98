"""Data models for snapshot payloads and stored snapshot records.

This module defines the schema of the serialized state of a subject and of
the persisted unit that wraps it with identity and event metadata.
"""

from datetime import datetime, timezone
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from model_snapshot.models.enums import EventType


def ensure_utc(value: datetime) -> datetime:
    """Returns ``value`` as a timezone-aware UTC datetime.

    Naive datetimes are assumed to already be expressed in UTC, which is how
    the relational backend hands them back on SQLite.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SnapshotPayload(BaseModel):
    """The serialized, storage-agnostic state of a subject.

    Attributes:
        attributes: Field name to JSON-compatible value.
        timestamps: Timestamp fields, present only when requested.
        relationships: Relation name to nested payload(s), present only when
            requested and the depth cutoff was not reached.
    """

    model_config = ConfigDict(extra="forbid")

    attributes: dict[str, Any] = Field(
        ..., description="Field name to JSON-compatible value."
    )
    timestamps: Optional[dict[str, Any]] = Field(
        default=None,
        description="Timestamp fields, present only when requested.",
    )
    relationships: Optional[
        dict[str, Union["SnapshotPayload", list["SnapshotPayload"], None]]
    ] = Field(
        default=None,
        description="Relation name to nested payload(s).",
    )

    def to_dict(self) -> dict[str, Any]:
        """Dumps the payload, omitting sections that were not captured."""
        data: dict[str, Any] = {"attributes": dict(self.attributes)}
        if self.timestamps is not None:
            data["timestamps"] = dict(self.timestamps)
        if self.relationships is not None:
            related: dict[str, Any] = {}
            for name, value in self.relationships.items():
                if value is None:
                    related[name] = None
                elif isinstance(value, list):
                    related[name] = [item.to_dict() for item in value]
                else:
                    related[name] = value.to_dict()
            data["relationships"] = related
        return data


SnapshotPayload.model_rebuild()


class SnapshotMeta(BaseModel):
    """Identity and event information supplied to a storage backend on save.

    Attributes:
        subject_type: Fully-qualified type name of the subject.
        subject_id: The subject's primary identity, as a string.
        event_type: What triggered the capture.
        metadata: Free-form caller data, never interpreted by the engine.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    subject_type: str = Field(..., min_length=1)
    subject_id: str = Field(...)
    event_type: EventType = Field(default=EventType.MANUAL)
    metadata: dict[str, Any] = Field(default_factory=dict)


class SnapshotRecord(BaseModel):
    """A persisted snapshot. Immutable once created.

    Attributes:
        id: Backend-assigned unique identifier.
        subject_type: Fully-qualified type name of the subject.
        subject_id: The subject's primary identity, as a string.
        label: Human identifier; not unique within a lineage.
        event_type: What triggered the capture.
        payload: The serialized state (``attributes`` plus optional
            ``timestamps`` and ``relationships``).
        metadata: Free-form caller data, never interpreted by the engine.
        created_at: When the snapshot was captured (UTC).
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(..., description="Backend-assigned unique identifier.")
    subject_type: str = Field(
        ..., description="Fully-qualified type name of the subject."
    )
    subject_id: str = Field(
        ..., description="The subject's primary identity, as a string."
    )
    label: str = Field(..., description="Human identifier of the snapshot.")
    event_type: EventType = Field(
        default=EventType.MANUAL, description="What triggered the capture."
    )
    payload: dict[str, Any] = Field(
        ..., description="The serialized state of the subject."
    )
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Free-form caller data, never interpreted by the engine.",
    )
    created_at: datetime = Field(
        ..., description="When the snapshot was captured (UTC)."
    )

    @field_validator("created_at")
    @classmethod
    def _normalize_created_at(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @property
    def attributes(self) -> Optional[dict[str, Any]]:
        attributes = self.payload.get("attributes")
        return attributes if isinstance(attributes, dict) else None


class SnapshotFilter(BaseModel):
    """Predicates accepted by ``SnapshotStorage.list``.

    Attributes:
        subject_type: Only records of this subject type.
        subject_id: Only records of this subject id.
        event_type: Only records captured for this event.
        label: Only records carrying this label.
        since: Inclusive lower bound on ``created_at``.
        before: Exclusive upper bound on ``created_at``.
        limit: Maximum number of records returned (newest first).
    """

    model_config = ConfigDict(extra="forbid")

    subject_type: Optional[str] = None
    subject_id: Optional[str] = None
    event_type: Optional[EventType] = None
    label: Optional[str] = None
    since: Optional[datetime] = None
    before: Optional[datetime] = None
    limit: Optional[int] = Field(default=None, ge=0)

    @field_validator("since", "before")
    @classmethod
    def _normalize_bounds(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None

    def matches(self, record: SnapshotRecord) -> bool:
        """Checks every predicate except ``limit`` against a record."""
        if self.subject_type is not None and record.subject_type != self.subject_type:
            return False
        if self.subject_id is not None and record.subject_id != self.subject_id:
            return False
        if self.event_type is not None and record.event_type != self.event_type:
            return False
        if self.label is not None and record.label != self.label:
            return False
        if self.since is not None and record.created_at < self.since:
            return False
        if self.before is not None and record.created_at >= self.before:
            return False
        return True
