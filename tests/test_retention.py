import pytest
from datetime import datetime, timedelta, timezone

from model_snapshot.config import RetentionConfig
from model_snapshot.models.snapshot import SnapshotMeta
from model_snapshot.retention import RetentionPolicy, purge
from model_snapshot.storage.file import FileSnapshotStorage
from model_snapshot.storage.in_memory import InMemorySnapshotStorage
from model_snapshot.storage.sql import SQLSnapshotStorage
from snapshot_subjects import FixedClock


START = datetime(2024, 1, 1, tzinfo=timezone.utc)
NOW = START + timedelta(days=60)


class TestRetention:
    @pytest.fixture(params=["memory", "file", "sql"])
    def storage(self, request, tmp_path):
        clock = FixedClock(START)
        if request.param == "memory":
            storage = InMemorySnapshotStorage(clock=clock)
        elif request.param == "file":
            storage = FileSnapshotStorage(tmp_path / "snapshots", clock=clock)
        else:
            storage = SQLSnapshotStorage("sqlite:///:memory:", clock=clock)

        # 60, 45 and 10 days old, plus one Order record 45 days old
        storage.save("oldest", {"attributes": {}}, SnapshotMeta(subject_type="User", subject_id="1"))
        clock.advance(days=15)
        storage.save("old", {"attributes": {}}, SnapshotMeta(subject_type="User", subject_id="1"))
        storage.save("old-order", {"attributes": {}}, SnapshotMeta(subject_type="Order", subject_id="1"))
        clock.advance(days=35)
        storage.save("recent", {"attributes": {}}, SnapshotMeta(subject_type="User", subject_id="1"))
        return storage

    def test_purge_is_idempotent(self, storage):
        cutoff = NOW - timedelta(days=30)
        assert purge(storage, cutoff) == 3
        assert [r.label for r in storage.list()] == ["recent"]
        assert purge(storage, cutoff) == 0

    def test_purge_by_subject_type(self, storage):
        assert purge(storage, NOW - timedelta(days=30), subject_type="Order") == 1
        assert {r.label for r in storage.list()} == {"oldest", "old", "recent"}

    def test_cutoff_is_exclusive(self, storage):
        assert purge(storage, START) == 0
        assert purge(storage, START + timedelta(seconds=1)) == 1

    def test_policy_applies_configured_window(self, storage):
        policy = RetentionPolicy.from_config(RetentionConfig(days=50))
        assert policy.cutoff(NOW) == NOW - timedelta(days=50)
        assert policy.apply(storage, now=NOW) == 1
        assert {r.label for r in storage.list()} == {"old", "old-order", "recent"}

    def test_disabled_policy_deletes_nothing(self, storage):
        policy = RetentionPolicy(enabled=False, days=1)
        assert policy.apply(storage, now=NOW) == 0
        assert len(storage.list()) == 4
