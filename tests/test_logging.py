import io
import json
import logging
import pytest
import sys

from model_snapshot.manager import SnapshotManager
from model_snapshot.observability.logging import (
    SERVICE_NAME,
    JsonFormatter,
    event_extra,
    get_logger,
    setup_logging,
)
from model_snapshot.storage.in_memory import InMemorySnapshotStorage
from snapshot_subjects import Broken, LazyAccount, User


@pytest.fixture
def root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


def test_json_formatter():
    formatter = JsonFormatter()
    log_record = logging.LogRecord(
        name="model_snapshot.manager",
        level=logging.INFO,
        pathname="manager.py",
        lineno=10,
        msg="captured %s",
        args=("v1",),
        exc_info=None,
    )
    log_record.extra_fields = {"event": "snapshot.capture", "snapshot_id": "1"}
    log_record.subject_type = "User"

    data = json.loads(formatter.format(log_record))

    assert data["message"] == "captured v1"
    assert data["level"] == "INFO"
    assert data["component"] == "model_snapshot.manager"
    assert data["event"] == "snapshot.capture"
    assert data["snapshot_id"] == "1"
    assert data["subject_type"] == "User"
    assert "timestamp" in data
    assert "extra_fields" not in data


def test_json_formatter_exception():
    formatter = JsonFormatter()
    try:
        raise ValueError("boom")
    except ValueError:
        log_record = logging.LogRecord("x", logging.ERROR, "x.py", 1, "failed", None, sys.exc_info())
    data = json.loads(formatter.format(log_record))
    assert "ValueError: boom" in data["exception"]


def test_setup_logging(root_logger, monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "debug")
    setup_logging()

    assert root_logger.level == logging.DEBUG
    assert len(root_logger.handlers) == 1
    assert isinstance(root_logger.handlers[0].formatter, JsonFormatter)

    setup_logging("warning")
    assert root_logger.level == logging.WARNING
    assert len(root_logger.handlers) == 1


def test_capture_and_batch_failures_are_logged():
    log_output = io.StringIO()
    handler = logging.StreamHandler(log_output)
    handler.setFormatter(JsonFormatter())
    logger = get_logger("model_snapshot.manager")
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    try:
        manager = SnapshotManager(InMemorySnapshotStorage())
        manager.capture_manual(User(1, "John"), "v1")
        manager.capture_scheduled_batch([Broken(2), LazyAccount(3)])
    finally:
        logger.removeHandler(handler)
        logger.setLevel(logging.NOTSET)

    entries = [json.loads(line) for line in log_output.getvalue().splitlines()]
    events = [e.get("event") for e in entries]
    assert events == [
        "snapshot.capture",
        "snapshot.batch.failure",
        "snapshot.batch.failure",
        "snapshot.batch",
    ]
    assert entries[0]["label"] == "v1"
    assert entries[1]["level"] == "ERROR"
    assert entries[1]["code"] == "snapshot.serialization"
    assert entries[1]["subject"] == "Broken#2"
    assert entries[2]["code"] == "RuntimeError"
    assert "RuntimeError: lazy relation failed to load" in entries[2]["exception"]
    assert entries[3]["failed"] == 2


def test_event_extra_drops_missing_fields():
    assert event_extra("snapshot.clear", subject_type=None, deleted=0) == {
        "extra_fields": {"event": "snapshot.clear", "deleted": 0}
    }


def test_setup_logging_writes_service_field(root_logger):
    stream = io.StringIO()
    setup_logging("info", stream=stream)

    get_logger("model_snapshot.retention").info(
        "Purged 2 snapshots", extra=event_extra("snapshot.purge", deleted=2)
    )

    data = json.loads(stream.getvalue())
    assert data["service"] == SERVICE_NAME
    assert data["event"] == "snapshot.purge"
    assert data["deleted"] == 2
    assert data["component"] == "model_snapshot.retention"


def test_get_logger():
    logger = get_logger("my_name")
    assert logger.name == "my_name"
    assert isinstance(logger, logging.Logger)
