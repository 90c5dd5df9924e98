"""JSON-file implementation of the SnapshotStorage.

Each record is written to ``<directory>/<id>.json``. Ids are sequential
integers derived from the files currently present. The directory itself is
the only index: every ``list`` rescans it and skips files that disappear or
cannot be parsed while it runs.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import ValidationError

from model_snapshot.errors import (
    InvalidSnapshotError,
    SerializationError,
    StorageIOError,
)
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
    is_numeric_id,
    normalize_payload,
    resolve_reference,
)

logger = get_logger(__name__)

_MAX_CREATE_ATTEMPTS = 5


class FileSnapshotStorage(SnapshotStorage):
    """Durable storage writing one JSON document per snapshot."""

    def __init__(self, path: Union[str, Path], clock: Optional[Clock] = None):
        """Initializes the storage, creating the directory if needed.

        Args:
            path: Directory holding the snapshot files.
            clock: Returns the capture time for new records.

        Raises:
            StorageIOError: If the directory cannot be created.
        """
        super().__init__(clock)
        self.path = Path(path)
        try:
            self.path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageIOError(
                f"Cannot create snapshot directory {self.path}: {e}"
            ) from e

    def _file_for(self, record_id: str) -> Path:
        return self.path / f"{record_id}.json"

    def _files(self) -> list[Path]:
        try:
            return [
                p
                for p in self.path.iterdir()
                if p.suffix == ".json" and is_numeric_id(p.stem)
            ]
        except OSError as e:
            raise StorageIOError(
                f"Cannot scan snapshot directory {self.path}: {e}"
            ) from e

    def _next_id(self) -> str:
        ids = [int(p.stem) for p in self._files()]
        return str(max(ids, default=0) + 1)

    def _read(self, file: Path) -> Optional[SnapshotRecord]:
        """Reads one file strictly. Returns None only if it does not exist."""
        try:
            raw = file.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageIOError(f"Cannot read snapshot file {file}: {e}") from e
        try:
            return SnapshotRecord.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as e:
            raise InvalidSnapshotError(
                f"Snapshot file {file} is corrupt: {e}"
            ) from e

    def _read_tolerant(self, file: Path) -> Optional[SnapshotRecord]:
        try:
            return self._read(file)
        except (StorageIOError, InvalidSnapshotError) as e:
            logger.warning(f"Skipping unreadable snapshot file: {e.detail}")
            return None

    def _records(self) -> list[SnapshotRecord]:
        records = []
        for file in self._files():
            record = self._read_tolerant(file)
            if record is not None:
                records.append(record)
        return records

    def save(
        self,
        label: str,
        payload: Union[SnapshotPayload, Mapping[str, Any]],
        meta: SnapshotMeta,
    ) -> SnapshotRecord:
        """Writes the record to a new file and fsyncs it before returning."""
        data = normalize_payload(payload)

        for _ in range(_MAX_CREATE_ATTEMPTS):
            record = self._build_record(self._next_id(), label, data, meta)
            try:
                document = json.dumps(record.model_dump(mode="json"), indent=2)
            except (TypeError, ValueError) as e:
                raise SerializationError(
                    f"Snapshot '{label}' is not JSON serializable: {e}"
                ) from e

            target = self._file_for(record.id)
            try:
                # "x" never overwrites an existing snapshot
                with open(target, "x", encoding="utf-8") as f:
                    f.write(document)
                    f.flush()
                    os.fsync(f.fileno())
            except FileExistsError:
                continue
            except OSError as e:
                target.unlink(missing_ok=True)
                raise StorageIOError(
                    f"Cannot write snapshot file {target}: {e}"
                ) from e

            logger.debug(f"Stored snapshot {record.id} in {target}")
            return record

        raise StorageIOError(
            f"Could not allocate a snapshot file in {self.path} "
            f"after {_MAX_CREATE_ATTEMPTS} attempts"
        )

    def load(self, id_or_label: str) -> Optional[SnapshotRecord]:
        """Retrieves a record by id, then by most recent label."""
        if is_numeric_id(id_or_label):
            record = self._read(self._file_for(id_or_label))
            if record is not None:
                return record
        return resolve_reference(apply_filter(self._records(), None), id_or_label)

    def list(self, filter: Optional[SnapshotFilter] = None) -> list[SnapshotRecord]:
        """Scans the directory and returns the readable matching records."""
        return apply_filter(self._records(), filter)

    def delete(self, id_or_label: str) -> bool:
        """Deletes the file of the record ``load`` resolves to."""
        record = self.load(id_or_label)
        if record is None:
            return False
        try:
            self._file_for(record.id).unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageIOError(f"Cannot delete snapshot {record.id}: {e}") from e
        return True

    def clear(self, subject_type: Optional[str] = None) -> int:
        """Deletes all snapshot files, or those of one subject type."""
        deleted = 0
        for file in self._files():
            if subject_type is not None:
                record = self._read_tolerant(file)
                if record is None or record.subject_type != subject_type:
                    continue
            try:
                file.unlink()
            except FileNotFoundError:
                continue
            except OSError as e:
                raise StorageIOError(f"Cannot delete {file}: {e}") from e
            deleted += 1
        return deleted
