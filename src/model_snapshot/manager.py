"""Snapshot manager.

The single entry point used by host applications, lifecycle hooks, report
rendering and the CLI. It serializes subjects, hands payloads to the
configured storage and exposes diff, restore, listing and retention
operations over the stored history.
"""

from __future__ import annotations

from datetime import datetime
from itertools import islice
from typing import Any, Callable, Iterable, Optional, Union

from model_snapshot.config import SnapshotConfig
from model_snapshot.diff import compute_diff
from model_snapshot.errors import NotFoundError, SnapshotError
from model_snapshot.models.enums import EventType, LifecycleEvent, ReportFormat, ReportPeriod
from model_snapshot.models.results import BatchCaptureResult, DiffResult, SnapshotStatistics
from model_snapshot.models.snapshot import SnapshotFilter, SnapshotMeta, SnapshotRecord
from model_snapshot.observability.logging import event_extra, get_logger
from model_snapshot.reports.renderer import period_bounds, render_report
from model_snapshot.restore import restore_subject
from model_snapshot.retention import RetentionPolicy, purge
from model_snapshot.serialization import SnapshotSerializer
from model_snapshot.stats import collect_stats
from model_snapshot.storage.base import SnapshotStorage
from model_snapshot.subject import (
    SnapshotSubject,
    subject_basename,
    subject_identity,
    subject_type_name,
)

logger = get_logger(__name__)

MetadataProvider = Callable[[SnapshotSubject], dict[str, Any]]


class SnapshotManager:
    """Orchestrates capture, comparison, restore and retention of snapshots."""

    def __init__(
        self,
        storage: SnapshotStorage,
        config: Optional[SnapshotConfig] = None,
        serializer: Optional[SnapshotSerializer] = None,
        metadata_provider: Optional[MetadataProvider] = None,
    ):
        """Initializes the manager.

        Args:
            storage: The storage driver every operation goes through.
            config: Serialization, retention, automatic capture and report
                settings. Defaults apply when omitted.
            serializer: Overrides the serializer built from ``config``.
            metadata_provider: Called with the subject on every capture; its
                result is stored as record metadata (e.g. the acting user).
        """
        self.storage = storage
        self.config = config or SnapshotConfig()
        self.serializer = serializer or SnapshotSerializer(self.config.serialization)
        self.metadata_provider = metadata_provider
        self.retention = RetentionPolicy.from_config(self.config.retention)

    def _stamp(self, fmt: str = "%Y-%m-%d-%H-%M-%S") -> str:
        return self.storage.now().strftime(fmt)

    def _capture(
        self,
        subject: SnapshotSubject,
        label: str,
        event_type: EventType,
        metadata: Optional[dict[str, Any]] = None,
    ) -> SnapshotRecord:
        payload = self.serializer.serialize(subject)

        record_metadata: dict[str, Any] = {}
        if self.metadata_provider is not None:
            record_metadata.update(self.metadata_provider(subject) or {})
        record_metadata.update(metadata or {})

        meta = SnapshotMeta(
            subject_type=subject_type_name(subject),
            subject_id=subject_identity(subject),
            event_type=event_type,
            metadata=record_metadata,
        )
        record = self.storage.save(label, payload, meta)
        logger.info(
            f"Captured snapshot '{label}' for {meta.subject_type}#{meta.subject_id}",
            extra=event_extra(
                "snapshot.capture",
                snapshot_id=record.id,
                label=label,
                event_type=event_type.value,
                subject_type=meta.subject_type,
                subject_id=meta.subject_id,
            ),
        )
        return record

    def capture_manual(
        self,
        subject: SnapshotSubject,
        label: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> SnapshotRecord:
        """Captures a snapshot on explicit request.

        Args:
            subject: The object to capture.
            label: Defaults to ``manual-<timestamp>``.
            metadata: Extra caller data stored with the record.

        Raises:
            SerializationError: If the subject cannot be serialized. Nothing
                is stored in that case.
        """
        return self._capture(
            subject, label or f"manual-{self._stamp()}", EventType.MANUAL, metadata
        )

    def capture_automatic(
        self,
        subject: SnapshotSubject,
        event_type: Union[str, LifecycleEvent],
    ) -> Optional[SnapshotRecord]:
        """Captures a snapshot for a lifecycle event if configured to.

        Returns:
            The record, or None when automatic capture is disabled or the
            subject type is not configured for this event.
        """
        event = LifecycleEvent(event_type)
        subject_type = subject_type_name(subject)
        if event not in self.config.automatic.events_for(subject_type):
            logger.debug(f"Automatic capture skipped for {subject_type} on {event.value}")
            return None

        label = (
            f"auto-{subject_basename(subject)}-{subject_identity(subject)}"
            f"-{event.value}-{self._stamp()}"
        )
        return self._capture(subject, label, EventType(event.value))

    def on_lifecycle_event(
        self,
        subject: SnapshotSubject,
        event_type: Union[str, LifecycleEvent],
    ) -> Optional[SnapshotRecord]:
        """Observer entry point for host lifecycle notifications."""
        return self.capture_automatic(subject, event_type)

    def capture_scheduled(
        self, subject: SnapshotSubject, label: Optional[str] = None
    ) -> SnapshotRecord:
        """Captures a snapshot tagged as scheduled."""
        label = label or (
            f"scheduled-{subject_basename(subject)}-{subject_identity(subject)}"
            f"-daily-{self._stamp()}"
        )
        return self._capture(subject, label, EventType.SCHEDULED)

    def capture_scheduled_batch(
        self,
        subjects: Iterable[SnapshotSubject],
        label_prefix: str = "scheduled",
        limit: Optional[int] = 100,
    ) -> BatchCaptureResult:
        """Captures scheduled snapshots for many subjects.

        A failing subject is counted and logged; the remaining subjects are
        still captured. Failures are keyed ``<type>#<id>``, or
        ``<type>[<position>]`` when the subject's id itself cannot be read.

        Args:
            subjects: The subjects to capture.
            label_prefix: Labels are ``<prefix>-<YYYY-MM-DD-HH-MM>-<id>``.
            limit: Maximum number of subjects processed. None for no limit.

        Returns:
            Counts of created and failed captures plus per-subject errors.
        """
        stamp = self._stamp("%Y-%m-%d-%H-%M")
        result = BatchCaptureResult()

        for position, subject in enumerate(islice(subjects, limit)):
            subject_key = f"{subject_type_name(subject)}[{position}]"
            try:
                subject_id = subject_identity(subject)
                subject_key = f"{subject_type_name(subject)}#{subject_id}"
                record = self.capture_scheduled(
                    subject, f"{label_prefix}-{stamp}-{subject_id}"
                )
            except Exception as e:
                if isinstance(e, SnapshotError):
                    detail, code = e.detail, e.code
                else:
                    detail, code = str(e) or type(e).__name__, type(e).__name__
                result.failed += 1
                result.errors[subject_key] = detail
                logger.error(
                    f"Failed to capture scheduled snapshot for {subject_key}: {detail}",
                    exc_info=True,
                    extra=event_extra(
                        "snapshot.batch.failure", subject=subject_key, code=code
                    ),
                )
                continue
            result.created += 1
            result.records.append(record)

        logger.info(
            f"Scheduled capture completed: {result.created} created, {result.failed} failed",
            extra=event_extra(
                "snapshot.batch", created=result.created, failed=result.failed
            ),
        )
        return result

    def load(self, id_or_label: str) -> Optional[SnapshotRecord]:
        return self.storage.load(id_or_label)

    def get(self, id_or_label: str) -> SnapshotRecord:
        """Loads a record, raising NotFoundError if it does not exist."""
        record = self.storage.load(id_or_label)
        if record is None:
            raise NotFoundError(f"Snapshot '{id_or_label}' not found")
        return record

    def list(self, filter: Optional[SnapshotFilter] = None) -> list[SnapshotRecord]:
        return self.storage.list(filter)

    def timeline(
        self, subject: SnapshotSubject, limit: int = 50
    ) -> list[SnapshotRecord]:
        """Lists a subject's lineage, newest first."""
        return self.storage.lineage(
            subject_type_name(subject), subject_identity(subject), limit
        )

    def compare(self, id_or_label_a: str, id_or_label_b: str) -> DiffResult:
        """Diffs two stored snapshots.

        Raises:
            NotFoundError: If either snapshot does not exist.
        """
        return compute_diff(self.get(id_or_label_a), self.get(id_or_label_b))

    def _find_for_subject(
        self, subject: SnapshotSubject, id_or_label: str
    ) -> SnapshotRecord:
        subject_type = subject_type_name(subject)
        subject_id = subject_identity(subject)
        record = self.storage.find_for_subject(subject_type, subject_id, id_or_label)
        if record is None:
            raise NotFoundError(
                f"Snapshot '{id_or_label}' not found for {subject_type}#{subject_id}"
            )
        return record

    def compare_with_current(
        self, subject: SnapshotSubject, id_or_label: str
    ) -> DiffResult:
        """Diffs a stored snapshot of the subject against its current state."""
        record = self._find_for_subject(subject, id_or_label)
        return compute_diff(record, self.serializer.serialize(subject))

    def restore(
        self,
        subject: SnapshotSubject,
        id_or_label: str,
        snapshot_after: bool = False,
    ) -> bool:
        """Restores a subject from one of its own snapshots.

        Args:
            subject: The live object to update.
            id_or_label: A record id or label within the subject's lineage.
            snapshot_after: Capture a ``restored-from-<label>-<timestamp>``
                snapshot after a successful restore.

        Returns:
            Whether the subject persisted the restored state.

        Raises:
            NotFoundError: If the subject has no such snapshot.
            InvalidSnapshotError: If the snapshot has no attributes.
        """
        record = self._find_for_subject(subject, id_or_label)
        outcome = restore_subject(subject, record)
        if outcome.restored and snapshot_after:
            self.capture_manual(
                subject,
                f"restored-from-{record.label}-{self._stamp()}",
                metadata={"restored_from": record.id},
            )
        return outcome.restored

    def delete(self, id_or_label: str) -> bool:
        deleted = self.storage.delete(id_or_label)
        if deleted:
            logger.info(
                f"Deleted snapshot '{id_or_label}'",
                extra=event_extra("snapshot.delete", id_or_label=id_or_label),
            )
        return deleted

    def clear(self, subject_type: Optional[str] = None) -> int:
        count = self.storage.clear(subject_type)
        logger.info(
            f"Cleared {count} snapshots",
            extra=event_extra(
                "snapshot.clear", subject_type=subject_type, deleted=count
            ),
        )
        return count

    def purge(
        self, older_than: datetime, subject_type: Optional[str] = None
    ) -> int:
        return purge(self.storage, older_than, subject_type)

    def purge_expired(
        self, now: Optional[datetime] = None, subject_type: Optional[str] = None
    ) -> int:
        """Applies the configured retention window."""
        return self.retention.apply(self.storage, now, subject_type)

    def stats(
        self,
        subject_type: Optional[str] = None,
        subject_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> SnapshotStatistics:
        return collect_stats(self.storage, subject_type, subject_id, now)

    def report(
        self,
        subject_type: str,
        subject_id: str,
        fmt: Union[str, ReportFormat] = ReportFormat.HTML,
        period: Optional[Union[str, ReportPeriod]] = None,
        include_diffs: Optional[bool] = None,
        now: Optional[datetime] = None,
    ) -> str:
        """Renders the history of one subject.

        Raises:
            UnsupportedFormatError: If ``fmt`` or ``period`` is unsupported.
        """
        since, before = period_bounds(period, now) if period else (None, None)
        records = self.storage.list(
            SnapshotFilter(
                subject_type=subject_type,
                subject_id=subject_id,
                since=since,
                before=before,
                limit=self.config.reports.max_timeline_entries,
            )
        )
        if include_diffs is None:
            include_diffs = self.config.reports.include_diffs
        return render_report(
            records,
            subject_type,
            subject_id,
            fmt,
            include_diffs=include_diffs,
            generated_at=now,
        )
