import json
import logging
import pytest
from typer.testing import CliRunner

from model_snapshot.cli import app
from model_snapshot.manager import SnapshotManager
from model_snapshot.storage.file import FileSnapshotStorage
from snapshot_subjects import FixedClock, Order, User

runner = CliRunner()


class TestCLI:
    @pytest.fixture(autouse=True)
    def setup_storage(self, tmp_path, monkeypatch):
        self.path = tmp_path / "snapshots"
        monkeypatch.delenv("SNAPSHOT_CONFIG", raising=False)
        monkeypatch.setenv("SNAPSHOT_DRIVER", "file")
        monkeypatch.setenv("SNAPSHOT_FILE_PATH", str(self.path))

        clock = FixedClock()
        self.storage = FileSnapshotStorage(self.path, clock=clock)
        manager = SnapshotManager(self.storage)
        user = User(1, "John", age=30)
        manager.capture_manual(user, "v1")
        clock.advance(hours=1)
        user.age = 31
        manager.capture_manual(user, "v2")
        manager.capture_manual(Order(1, 10), "o1")

        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_list(self):
        result = runner.invoke(app, ["list"])
        assert result.exit_code == 0
        assert "[manual] 1: v1 (User#1, 2024-01-15 12:00:00)" in result.output
        assert result.output.index("o1") < result.output.index("v2") < result.output.index("v1")

        result = runner.invoke(app, ["list", "--subject-type", "Order"])
        assert "o1" in result.output
        assert "v1" not in result.output

        result = runner.invoke(app, ["list", "--event", "scheduled"])
        assert result.exit_code == 0
        assert "No snapshots found." in result.output

    def test_show(self):
        result = runner.invoke(app, ["show", "v2"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["label"] == "v2"
        assert data["payload"]["attributes"]["age"] == 31

    def test_show_missing(self):
        result = runner.invoke(app, ["show", "missing"])
        assert result.exit_code == 1
        assert "Error: Snapshot 'missing' not found" in result.output

    def test_diff(self):
        result = runner.invoke(app, ["diff", "v1", "v2"])
        assert result.exit_code == 0
        assert json.loads(result.output)["modified"] == {"age": {"from": 30, "to": 31}}

        result = runner.invoke(app, ["diff", "v1", "1"])
        assert result.exit_code == 0
        assert "No differences." in result.output

        result = runner.invoke(app, ["diff", "v1", "nope"])
        assert result.exit_code == 1

    def test_delete(self):
        result = runner.invoke(app, ["delete", "v1"])
        assert result.exit_code == 0
        assert "Snapshot deleted: v1" in result.output
        assert self.storage.load("v1") is None

        result = runner.invoke(app, ["delete", "v1"])
        assert result.exit_code == 1
        assert "Snapshot not found" in result.output

    def test_clear_dry_run(self):
        result = runner.invoke(app, ["clear", "--subject-type", "User", "--dry-run"])
        assert result.exit_code == 0
        assert "Would delete 2 snapshots:" in result.output
        assert len(self.storage.list()) == 3

    def test_clear_confirmation(self):
        result = runner.invoke(app, ["clear", "--subject-type", "User"], input="n\n")
        assert result.exit_code == 1
        assert len(self.storage.list()) == 3

        result = runner.invoke(app, ["clear", "--subject-type", "User"], input="y\n")
        assert result.exit_code == 0
        assert "Deleted 2 snapshots." in result.output
        assert [r.label for r in self.storage.list()] == ["o1"]

    def test_clear_with_filters(self):
        result = runner.invoke(
            app, ["clear", "--before", "2024-01-15T12:30:00", "--force"]
        )
        assert result.exit_code == 0
        assert "Deleted 1 snapshots." in result.output
        assert {r.label for r in self.storage.list()} == {"v2", "o1"}

        result = runner.invoke(
            app, ["clear", "--subject-type", "User", "--subject-id", "2", "--force"]
        )
        assert "No snapshots found matching the criteria." in result.output

    def test_purge(self):
        result = runner.invoke(app, ["purge", "--days", "30", "--subject-type", "Order"])
        assert result.exit_code == 0
        assert "Purged 1 snapshots." in result.output

        result = runner.invoke(app, ["purge"])
        assert result.exit_code == 0
        assert "Purged 2 snapshots." in result.output
        assert self.storage.list() == []

    def test_stats(self):
        result = runner.invoke(app, ["stats", "--subject-type", "User"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["total_snapshots"] == 2
        assert data["most_changed_fields"] == {"age": 1}

    def test_report(self, tmp_path):
        result = runner.invoke(app, ["report", "User", "1", "--format", "csv", "--include-diffs"])
        assert result.exit_code == 0
        lines = result.output.splitlines()
        assert lines[0] == "Label,Event Type,Created At,Changed Fields"
        assert lines[1].startswith("v2,manual,")
        assert lines[1].endswith(",age")

        output = tmp_path / "report.html"
        result = runner.invoke(app, ["report", "User", "1", "--output", str(output)])
        assert result.exit_code == 0
        assert f"Report written to {output}" in result.output
        assert "Snapshot history" in output.read_text()

    def test_report_unsupported_format(self):
        result = runner.invoke(app, ["report", "User", "1", "--format", "pdf"])
        assert result.exit_code == 1
        assert "Unsupported format: pdf" in result.output

    def test_config_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("SNAPSHOT_DRIVER")
        monkeypatch.delenv("SNAPSHOT_FILE_PATH")
        config = tmp_path / "snapshot.yaml"
        config.write_text(f"driver: file\nfile:\n  path: {self.path}\n")

        result = runner.invoke(app, ["--config", str(config), "list"])
        assert result.exit_code == 0
        assert "v1" in result.output

    def test_invalid_config(self, tmp_path, monkeypatch):
        monkeypatch.delenv("SNAPSHOT_DRIVER")
        config = tmp_path / "snapshot.yaml"
        config.write_text("driver: redis\n")

        result = runner.invoke(app, ["--config", str(config), "list"])
        assert result.exit_code == 1
        assert "Invalid configuration" in result.output
