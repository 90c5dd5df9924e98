"""Enumeration definitions for the snapshot engine.

This module contains standard Enum classes used across the package to ensure
consistent values for event types, storage drivers and report options.
"""

from enum import Enum


class EventType(str, Enum):
    """Defines what triggered the capture of a snapshot.

    Attributes:
        MANUAL: Captured on explicit request.
        CREATED: Captured after the subject was created.
        UPDATED: Captured after the subject was updated.
        DELETED: Captured after the subject was deleted.
        SCHEDULED: Captured by an externally triggered periodic job.
    """

    MANUAL = "manual"
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    SCHEDULED = "scheduled"


class LifecycleEvent(str, Enum):
    """Defines the host lifecycle events that may trigger automatic capture.

    Attributes:
        CREATED: The subject was persisted for the first time.
        UPDATED: The subject's persisted state changed.
        DELETED: The subject was removed.
    """

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


class StorageDriver(str, Enum):
    """Defines the available storage backends.

    Attributes:
        MEMORY: Process-lifetime storage backed by an explicit store instance.
        FILE: One JSON file per snapshot under a directory.
        DATABASE: A relational table accessed through SQLAlchemy.
    """

    MEMORY = "memory"
    FILE = "file"
    DATABASE = "database"


class ReportFormat(str, Enum):
    """Defines the supported history report formats.

    Attributes:
        HTML: A standalone HTML document.
        JSON: A pretty-printed JSON document.
        CSV: Comma-separated rows, one per snapshot.
    """

    HTML = "html"
    JSON = "json"
    CSV = "csv"


class ReportPeriod(str, Enum):
    """Defines the time windows a history report can be restricted to."""

    TODAY = "today"
    YESTERDAY = "yesterday"
    LAST_WEEK = "last-week"
    LAST_MONTH = "last-month"
    LAST_YEAR = "last-year"
