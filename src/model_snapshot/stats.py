"""Statistics over stored snapshot history."""

from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Optional

from model_snapshot.diff import compute_diff
from model_snapshot.errors import InvalidSnapshotError
from model_snapshot.models.results import SnapshotStatistics
from model_snapshot.models.snapshot import (
    SnapshotFilter,
    SnapshotRecord,
    ensure_utc,
    utc_now,
)
from model_snapshot.observability.logging import get_logger
from model_snapshot.storage.base import SnapshotStorage

logger = get_logger(__name__)

MAX_DAYS = 30


def _most_changed_fields(records: list[SnapshotRecord]) -> dict[str, int]:
    lineages: dict[tuple[str, str], list[SnapshotRecord]] = defaultdict(list)
    # records arrive newest first; lineages are walked oldest first
    for record in reversed(records):
        lineages[(record.subject_type, record.subject_id)].append(record)

    counts: Counter = Counter()
    for lineage in lineages.values():
        for previous, current in zip(lineage, lineage[1:]):
            try:
                counts.update(compute_diff(previous, current).changed_fields)
            except InvalidSnapshotError as e:
                logger.warning(f"Skipping malformed snapshot in stats: {e.detail}")

    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return dict(ranked)


def collect_stats(
    storage: SnapshotStorage,
    subject_type: Optional[str] = None,
    subject_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> SnapshotStatistics:
    """Computes counters over the stored history.

    Args:
        storage: The driver to read from.
        subject_type: Restricts the statistics to one subject type.
        subject_id: Restricts the statistics to one subject id.
        now: Reference time for the per-day window. Defaults to now.

    Returns:
        Totals, counts per event type, counts per day over the last 30 days
        (newest day first) and the fields that changed most often between
        consecutive captures of the same subject.
    """
    records = storage.list(
        SnapshotFilter(subject_type=subject_type, subject_id=subject_id)
    )
    first_day = (ensure_utc(now or utc_now()) - timedelta(days=MAX_DAYS - 1)).date()

    by_event = Counter(r.event_type.value for r in records)
    by_day = Counter(
        r.created_at.date().isoformat()
        for r in records
        if r.created_at.date() >= first_day
    )

    return SnapshotStatistics(
        subject_type=subject_type,
        subject_id=subject_id,
        total_snapshots=len(records),
        snapshots_by_event=dict(sorted(by_event.items())),
        changes_by_day=dict(sorted(by_day.items(), reverse=True)),
        most_changed_fields=_most_changed_fields(records),
    )
