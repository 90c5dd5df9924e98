"""Restore engine.

Applies the attributes of a stored snapshot back onto a live subject and
hands persistence to the subject itself.
"""

import copy

from model_snapshot.diff import payload_attributes, values_equal
from model_snapshot.errors import SerializationError
from model_snapshot.models.results import FieldChange, RestoreOutcome
from model_snapshot.models.snapshot import SnapshotRecord
from model_snapshot.observability.logging import event_extra, get_logger
from model_snapshot.serialization import to_snapshot_value
from model_snapshot.subject import SnapshotSubject, subject_type_name

logger = get_logger(__name__)


def _current_value(fields: dict, key: str):
    if key not in fields:
        return None
    try:
        return to_snapshot_value(fields[key], f"attributes.{key}")
    except SerializationError:
        # Unserializable live values always count as a change
        return repr(fields[key])


def restore_subject(
    subject: SnapshotSubject, record: SnapshotRecord
) -> RestoreOutcome:
    """Restores a subject's attributes from a snapshot record.

    Relationships in the payload are ignored. No snapshot is captured after
    the restore.

    Args:
        subject: The live object to update.
        record: The snapshot to apply.

    Returns:
        A RestoreOutcome whose ``restored`` flag is the result of the
        subject's own persistence step.

    Raises:
        InvalidSnapshotError: If the record has no attributes mapping.
    """
    attributes = copy.deepcopy(dict(payload_attributes(record)))

    fields = subject.snapshot_fields()
    changes = {}
    for key, value in sorted(attributes.items()):
        current = _current_value(fields, key)
        if key not in fields or not values_equal(current, value):
            changes[key] = FieldChange(from_=current, to=value)

    subject.apply_snapshot_attributes(attributes)
    restored = bool(subject.persist_snapshot_state())

    logger.info(
        f"Restored {subject_type_name(subject)} from snapshot {record.id}",
        extra=event_extra(
            "snapshot.restore",
            snapshot_id=record.id,
            label=record.label,
            restored=restored,
            changed_fields=list(changes),
        ),
    )
    return RestoreOutcome(
        restored=restored,
        snapshot_id=record.id,
        label=record.label,
        changes=changes,
    )
