import csv
import io
import json
import pytest
from datetime import datetime, timedelta, timezone

from model_snapshot.errors import UnsupportedFormatError
from model_snapshot.models.enums import ReportFormat
from model_snapshot.models.snapshot import SnapshotMeta
from model_snapshot.reports.renderer import parse_format, period_bounds, render_report
from model_snapshot.storage.in_memory import InMemorySnapshotStorage
from snapshot_subjects import FixedClock


GENERATED = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)


class TestRenderReport:
    @pytest.fixture
    def records(self):
        clock = FixedClock(datetime(2024, 4, 1, tzinfo=timezone.utc))
        storage = InMemorySnapshotStorage(clock=clock)
        meta = SnapshotMeta(subject_type="User", subject_id="1")
        storage.save("v1", {"attributes": {"name": "John", "age": 30}}, meta)
        clock.advance(days=1)
        storage.save("<b>v2</b>", {"attributes": {"name": "John", "age": 31}}, meta)
        return storage.list()

    def test_html(self, records):
        html = render_report(records, "User", "1", "html", generated_at=GENERATED)

        assert html.startswith("<!DOCTYPE html>")
        assert "Snapshot history" in html
        assert "Total snapshots: 2" in html
        assert "v1" in html
        assert "&lt;b&gt;v2&lt;/b&gt;" in html
        assert "<b>v2</b>" not in html
        assert "2024-05-01 10:00:00" in html

    def test_html_with_diffs(self, records):
        html = render_report(records, "User", "1", ReportFormat.HTML, include_diffs=True)
        assert "<td>age</td><td>modified</td><td>30</td><td>31</td>" in html

    def test_html_empty(self):
        html = render_report([], "User", "404")
        assert "No snapshots found for this subject." in html

    def test_json(self, records):
        document = json.loads(
            render_report(records, "User", "1", "json", include_diffs=True, generated_at=GENERATED)
        )

        assert document["subject"] == {"type": "User", "id": "1"}
        assert document["generated_at"] == "2024-05-01T10:00:00+00:00"
        assert document["total_snapshots"] == 2
        assert [s["label"] for s in document["snapshots"]] == ["<b>v2</b>", "v1"]
        assert document["snapshots"][0]["diff"] == {
            "added": {},
            "modified": {"age": {"from": 30, "to": 31}},
            "removed": {},
        }
        assert document["snapshots"][1]["diff"] is None

    def test_json_without_diffs(self, records):
        document = json.loads(render_report(records, "User", "1", "JSON"))
        assert "diff" not in document["snapshots"][0]

    def test_csv(self, records):
        rows = list(csv.reader(io.StringIO(render_report(records, "User", "1", "csv"))))
        assert rows[0] == ["Label", "Event Type", "Created At"]
        assert rows[1][:2] == ["<b>v2</b>", "manual"]
        assert rows[2][0] == "v1"
        assert len(rows) == 3

    def test_csv_with_diffs(self, records):
        output = render_report(records, "User", "1", "csv", include_diffs=True)
        rows = list(csv.reader(io.StringIO(output)))
        assert rows[0][-1] == "Changed Fields"
        assert rows[1][-1] == "age"
        assert rows[2][-1] == ""

    def test_unsupported_format(self, records):
        with pytest.raises(UnsupportedFormatError):
            render_report(records, "User", "1", "pdf")
        with pytest.raises(UnsupportedFormatError):
            parse_format("xml")


class TestPeriodBounds:
    NOW = datetime(2024, 5, 10, 15, 30, tzinfo=timezone.utc)

    def test_periods(self):
        midnight = datetime(2024, 5, 10, tzinfo=timezone.utc)
        assert period_bounds("today", self.NOW) == (midnight, None)
        assert period_bounds("yesterday", self.NOW) == (midnight - timedelta(days=1), midnight)
        assert period_bounds("last-week", self.NOW) == (self.NOW - timedelta(weeks=1), None)
        assert period_bounds("last-month", self.NOW) == (self.NOW - timedelta(days=30), None)
        assert period_bounds("last-year", self.NOW) == (self.NOW - timedelta(days=365), None)

    def test_unknown_period(self):
        with pytest.raises(UnsupportedFormatError):
            period_bounds("fortnight", self.NOW)
