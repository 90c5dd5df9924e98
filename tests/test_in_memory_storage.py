from model_snapshot.models.snapshot import SnapshotMeta
from model_snapshot.storage.in_memory import InMemorySnapshotStorage, InMemorySnapshotStore


META = SnapshotMeta(subject_type="User", subject_id="1")


class TestInMemorySnapshotStorage:
    def test_storages_share_an_explicit_store(self):
        store = InMemorySnapshotStore()
        writer = InMemorySnapshotStorage(store)
        reader = InMemorySnapshotStorage(store)

        record = writer.save("v1", {"attributes": {"x": 1}}, META)
        assert reader.load("v1") == record
        assert InMemorySnapshotStorage().load("v1") is None

    def test_reset(self):
        storage = InMemorySnapshotStorage()
        storage.save("v1", {"attributes": {}}, META)
        storage.reset()

        assert storage.list() == []
        assert storage.save("v2", {"attributes": {}}, META).id == "1"

    def test_returned_records_are_copies(self):
        storage = InMemorySnapshotStorage()
        record = storage.save("v1", {"attributes": {"tags": ["a"]}}, META)

        record.payload["attributes"]["tags"].append("b")
        storage.load("v1").payload["attributes"]["tags"].append("c")
        storage.list()[0].payload["attributes"]["tags"].append("d")

        assert storage.load("v1").payload["attributes"]["tags"] == ["a"]
