"""Time-based retention of stored snapshots."""

from datetime import datetime, timedelta
from typing import Optional

from model_snapshot.config import RetentionConfig
from model_snapshot.models.snapshot import SnapshotFilter, ensure_utc, utc_now
from model_snapshot.observability.logging import event_extra, get_logger
from model_snapshot.storage.base import SnapshotStorage

logger = get_logger(__name__)


def purge(
    storage: SnapshotStorage,
    older_than: datetime,
    subject_type: Optional[str] = None,
) -> int:
    """Deletes every record created strictly before ``older_than``.

    Args:
        storage: The driver to purge.
        older_than: Records with ``created_at`` before this are deleted.
        subject_type: Restricts the purge to one subject type.

    Returns:
        The number of records deleted. A repeated call returns 0.
    """
    cutoff = ensure_utc(older_than)
    expired = storage.list(SnapshotFilter(subject_type=subject_type, before=cutoff))

    deleted = 0
    for record in expired:
        # Delete by id; labels are not unique
        if storage.delete(record.id):
            deleted += 1

    logger.info(
        f"Purged {deleted} snapshots older than {cutoff.isoformat()}",
        extra=event_extra(
            "snapshot.purge",
            cutoff=cutoff.isoformat(),
            subject_type=subject_type,
            deleted=deleted,
        ),
    )
    return deleted


class RetentionPolicy:
    """Applies the configured retention window to a storage."""

    def __init__(self, enabled: bool = True, days: int = 30):
        self.enabled = enabled
        self.days = days

    @classmethod
    def from_config(cls, config: RetentionConfig) -> "RetentionPolicy":
        return cls(enabled=config.enabled, days=config.days)

    def cutoff(self, now: Optional[datetime] = None) -> datetime:
        return ensure_utc(now or utc_now()) - timedelta(days=self.days)

    def apply(
        self,
        storage: SnapshotStorage,
        now: Optional[datetime] = None,
        subject_type: Optional[str] = None,
    ) -> int:
        """Purges records outside the window; a disabled policy deletes nothing."""
        if not self.enabled:
            return 0
        return purge(storage, self.cutoff(now), subject_type)
