"""Host object contract for snapshot subjects.

Domain objects opt into snapshotting by subclassing ``SnapshotSubject`` and
implementing ``persist_snapshot_state``. Class attributes declare which
fields are hidden, which are relationships and which are timestamps.
"""

from abc import ABC, abstractmethod
from typing import Any, ClassVar, Mapping, Optional


class SnapshotSubject(ABC):
    """Mixin for domain objects whose state can be snapshotted and restored.

    Attributes:
        __snapshot_type__: Overrides the stored subject type name. Defaults
            to the fully-qualified class name.
        __snapshot_key__: Name of the attribute holding the primary identity.
        __snapshot_hidden__: Fields excluded unless ``include_hidden`` is set.
        __snapshot_relationships__: Fields holding related subjects.
        __snapshot_timestamps__: Fields captured under ``timestamps``.
    """

    __snapshot_type__: ClassVar[Optional[str]] = None
    __snapshot_key__: ClassVar[str] = "id"
    __snapshot_hidden__: ClassVar[tuple[str, ...]] = ()
    __snapshot_relationships__: ClassVar[tuple[str, ...]] = ()
    __snapshot_timestamps__: ClassVar[tuple[str, ...]] = (
        "created_at",
        "updated_at",
    )

    def snapshot_key(self) -> Any:
        """Returns the subject's primary identity value."""
        return getattr(self, self.__snapshot_key__, None)

    def snapshot_fields(self) -> dict[str, Any]:
        """Returns the subject's raw field values, keyed by field name.

        The default reads public instance attributes. Hosts whose state does
        not live in ``__dict__`` should override this.
        """
        return {k: v for k, v in vars(self).items() if not k.startswith("_")}

    def apply_snapshot_attributes(self, values: Mapping[str, Any]) -> None:
        """Assigns snapshot attribute values onto the live object."""
        for key, value in values.items():
            setattr(self, key, value)

    @abstractmethod
    def persist_snapshot_state(self) -> bool:
        """Persists the current state through the host's own mechanism.

        Returns:
            True if the state was persisted.
        """
        pass  # pragma: no cover


def subject_type_name(subject: SnapshotSubject) -> str:
    """Returns the lineage type name of a subject."""
    cls = type(subject)
    if cls.__snapshot_type__:
        return cls.__snapshot_type__
    return f"{cls.__module__}.{cls.__qualname__}"


def subject_identity(subject: SnapshotSubject) -> str:
    """Returns the subject's primary identity as a backend-agnostic string."""
    key = subject.snapshot_key()
    return "unknown" if key is None else str(key)


def subject_basename(subject: SnapshotSubject) -> str:
    """Returns the short type name used in generated labels."""
    return subject_type_name(subject).rsplit(".", 1)[-1]
