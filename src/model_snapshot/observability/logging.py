"""Structured JSON logging for snapshot events.

Every capture, restore, delete, clear, purge and batch outcome is logged as
one JSON object per line. Modules attach structured data with
``event_extra`` so that the event name and its fields land at the top level
of the entry.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Optional, TextIO

SERVICE_NAME = "model-snapshot"

_RESERVED_ATTRS = frozenset(
    logging.LogRecord("name", logging.INFO, "path", 1, "msg", None, None).__dict__
) | {"message", "asctime", "stack_info", "extra_fields"}


def event_extra(event: str, **fields: Any) -> dict[str, Any]:
    """Builds the ``extra`` argument for a structured snapshot event.

    Args:
        event: Dotted event name, e.g. ``snapshot.capture``.
        **fields: Additional fields; None values are dropped.

    Returns:
        A mapping suitable for ``logger.info(..., extra=...)``.
    """
    payload = {"event": event}
    payload.update({k: v for k, v in fields.items() if v is not None})
    return {"extra_fields": payload}


class JsonFormatter(logging.Formatter):
    """Formats records as single-line JSON objects."""

    def __init__(self, static_fields: Optional[dict[str, Any]] = None, **kwargs):
        """Initializes the formatter.

        Args:
            static_fields: Fields added to every entry, such as the service
                name.
        """
        super().__init__(**kwargs)
        self.static_fields = dict(static_fields or {})

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "component": record.name,
            **self.static_fields,
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        extra_fields = getattr(record, "extra_fields", None)
        if isinstance(extra_fields, dict):
            log_entry.update(extra_fields)
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_entry[key] = value

        # Enum members, datetimes and ids are rendered through str()
        return json.dumps(log_entry, default=str)


def setup_logging(level: Optional[str] = None, stream: Optional[TextIO] = None):
    """Routes all logging through a single JSON handler.

    Args:
        level: Log level name. Defaults to the ``LOG_LEVEL`` env var or INFO.
        stream: Destination of the entries. Defaults to stderr so that
            command output on stdout stays machine-readable.
    """
    log_level = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()

    logger = logging.getLogger()
    logger.setLevel(log_level)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JsonFormatter(static_fields={"service": SERVICE_NAME}))

    for h in logger.handlers[:]:
        logger.removeHandler(h)
    logger.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Returns the named logger (typically ``__name__``)."""
    return logging.getLogger(name)
