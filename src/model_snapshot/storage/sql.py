"""SQLAlchemy implementation of the SnapshotStorage."""

from __future__ import annotations

from collections.abc import Mapping
from contextlib import contextmanager
from typing import Any, Iterator, Optional, Union

from sqlalchemy import create_engine, delete, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from model_snapshot.config import DEFAULT_SQLITE_URL
from model_snapshot.errors import StorageIOError
from model_snapshot.models.enums import EventType
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
    is_numeric_id,
    normalize_payload,
)
from model_snapshot.storage.models import Base, SnapshotRow

logger = get_logger(__name__)


def make_engine(db_url: str = DEFAULT_SQLITE_URL) -> Engine:
    if db_url.startswith("sqlite:"):
        return create_engine(db_url, connect_args={"check_same_thread": False})
    return create_engine(db_url)


def _to_record(row: SnapshotRow) -> SnapshotRecord:
    return SnapshotRecord(
        id=str(row.id),
        subject_type=row.subject_type,
        subject_id=row.subject_id,
        label=row.label,
        event_type=EventType(row.event_type),
        payload=row.payload,
        metadata=row.meta or {},
        created_at=row.created_at,
    )


class SQLSnapshotStorage(SnapshotStorage):
    """Durable storage in the ``snapshots`` table."""

    def __init__(
        self,
        database_url: str = DEFAULT_SQLITE_URL,
        engine: Optional[Engine] = None,
        clock: Optional[Clock] = None,
    ):
        """Initialize the storage with a database URL or an engine.

        Args:
            database_url: SQLAlchemy connection string.
            engine: An existing engine; takes precedence over the URL.
            clock: Returns the capture time for new records.

        Raises:
            StorageIOError: If the schema cannot be created.
        """
        super().__init__(clock)
        self.engine = engine if engine is not None else make_engine(database_url)
        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise StorageIOError(f"Cannot initialize snapshot table: {e}") from e
        self.SessionLocal = sessionmaker(
            bind=self.engine, autoflush=False, expire_on_commit=False
        )

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self.SessionLocal()
        try:
            yield session
        except SQLAlchemyError as e:
            session.rollback()
            raise StorageIOError(f"Snapshot database operation failed: {e}") from e
        finally:
            session.close()

    def _ordered(self, stmt):
        return stmt.order_by(SnapshotRow.created_at.desc(), SnapshotRow.id.desc())

    def _resolve(self, session: Session, id_or_label: str, *criteria) -> Optional[SnapshotRow]:
        if is_numeric_id(id_or_label):
            row = session.execute(
                select(SnapshotRow).where(
                    SnapshotRow.id == int(id_or_label), *criteria
                )
            ).scalar_one_or_none()
            if row is not None:
                return row
        stmt = self._ordered(
            select(SnapshotRow).where(SnapshotRow.label == id_or_label, *criteria)
        ).limit(1)
        return session.execute(stmt).scalar_one_or_none()

    def save(
        self,
        label: str,
        payload: Union[SnapshotPayload, Mapping[str, Any]],
        meta: SnapshotMeta,
    ) -> SnapshotRecord:
        """Inserts a row and commits before returning."""
        data = normalize_payload(payload)
        with self._session() as session:
            row = SnapshotRow(
                subject_type=meta.subject_type,
                subject_id=meta.subject_id,
                label=label,
                event_type=meta.event_type.value,
                payload=data,
                meta=dict(meta.metadata),
                created_at=self.now(),
            )
            session.add(row)
            session.commit()
            logger.debug(f"Stored snapshot {row.id} in table {SnapshotRow.__tablename__}")
            return _to_record(row)

    def load(self, id_or_label: str) -> Optional[SnapshotRecord]:
        with self._session() as session:
            row = self._resolve(session, id_or_label)
            return _to_record(row) if row is not None else None

    def find_for_subject(
        self, subject_type: str, subject_id: str, id_or_label: str
    ) -> Optional[SnapshotRecord]:
        """Resolves an id or label through the subject index."""
        with self._session() as session:
            row = self._resolve(
                session,
                id_or_label,
                SnapshotRow.subject_type == subject_type,
                SnapshotRow.subject_id == subject_id,
            )
            return _to_record(row) if row is not None else None

    def list(self, filter: Optional[SnapshotFilter] = None) -> list[SnapshotRecord]:
        stmt = select(SnapshotRow)
        if filter is not None:
            if filter.subject_type is not None:
                stmt = stmt.where(SnapshotRow.subject_type == filter.subject_type)
            if filter.subject_id is not None:
                stmt = stmt.where(SnapshotRow.subject_id == filter.subject_id)
            if filter.event_type is not None:
                stmt = stmt.where(SnapshotRow.event_type == filter.event_type.value)
            if filter.label is not None:
                stmt = stmt.where(SnapshotRow.label == filter.label)
            if filter.since is not None:
                stmt = stmt.where(SnapshotRow.created_at >= filter.since)
            if filter.before is not None:
                stmt = stmt.where(SnapshotRow.created_at < filter.before)
        stmt = self._ordered(stmt)
        if filter is not None and filter.limit is not None:
            stmt = stmt.limit(filter.limit)

        with self._session() as session:
            return [_to_record(row) for row in session.execute(stmt).scalars().all()]

    def delete(self, id_or_label: str) -> bool:
        with self._session() as session:
            row = self._resolve(session, id_or_label)
            if row is None:
                return False
            session.delete(row)
            session.commit()
            return True

    def clear(self, subject_type: Optional[str] = None) -> int:
        stmt = delete(SnapshotRow)
        if subject_type is not None:
            stmt = stmt.where(SnapshotRow.subject_type == subject_type)
        with self._session() as session:
            result = session.execute(stmt)
            session.commit()
            return result.rowcount or 0
