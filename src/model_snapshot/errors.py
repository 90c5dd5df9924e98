"""Exception taxonomy for the snapshot engine.

Every error carries a machine-readable ``code`` and a human-readable
``detail``, mirroring how execution failures are reported elsewhere in the
package.
"""

from typing import Optional


class SnapshotError(Exception):
    """Base class for all snapshot engine errors."""

    code = "snapshot.error"

    def __init__(self, detail: str, code: Optional[str] = None):
        self.detail = detail
        if code is not None:
            self.code = code
        super().__init__(detail)


class SerializationError(SnapshotError):
    """The subject's state could not be converted into a payload."""

    code = "snapshot.serialization"


class NotFoundError(SnapshotError):
    """A referenced snapshot id, label or subject does not exist."""

    code = "snapshot.not_found"


class InvalidSnapshotError(SnapshotError):
    """A stored payload is malformed for the requested operation."""

    code = "snapshot.invalid"


class UnsupportedFormatError(SnapshotError):
    """An output format outside the supported set was requested."""

    code = "snapshot.unsupported_format"


class StorageIOError(SnapshotError):
    """A storage backend failed to read or write."""

    code = "snapshot.storage_io"


class ConfigurationError(SnapshotError):
    """The configuration could not be loaded or is invalid."""

    code = "snapshot.configuration"
