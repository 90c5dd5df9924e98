"""SQLAlchemy models for the relational storage driver."""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class SnapshotRow(Base):
    """Represents an immutable snapshot of a subject's state.

    Attributes:
        id: Autoincrement identifier, exposed as a string on records.
        subject_type: Fully-qualified type name of the subject.
        subject_id: The subject's primary identity, as a string.
        label: Human identifier; indexed for lookup by label.
        event_type: What triggered the capture.
        payload: JSON blob with attributes, timestamps and relationships.
        meta: Free-form caller metadata (column ``metadata``).
        created_at: When the snapshot was captured (UTC).
    """

    __tablename__ = "snapshots"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    subject_type: Mapped[str] = mapped_column(String(255))
    subject_id: Mapped[str] = mapped_column(String(255))
    label: Mapped[str] = mapped_column(String(255), index=True)
    event_type: Mapped[str] = mapped_column(String(32), default="manual")
    payload: Mapped[dict[str, Any]] = mapped_column(JSON)
    meta: Mapped[Optional[dict[str, Any]]] = mapped_column(
        "metadata", JSON, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), index=True
    )

    __table_args__ = (
        Index("ix_snapshots_subject", "subject_type", "subject_id"),
    )
