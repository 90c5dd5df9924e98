"""History report rendering.

Reports only consume records handed over by the snapshot manager. The
format set is closed; anything else raises ``UnsupportedFormatError``.
"""

import csv
import io
import json
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Optional, Union

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from model_snapshot.diff import compute_diff
from model_snapshot.errors import InvalidSnapshotError, UnsupportedFormatError
from model_snapshot.models.enums import ReportFormat, ReportPeriod
from model_snapshot.models.results import DiffResult
from model_snapshot.models.snapshot import SnapshotRecord, ensure_utc, utc_now

_TEMPLATE_DIR = Path(__file__).parent / "templates"
_HTML_TEMPLATE = "report.html.jinja"


def _environment() -> Environment:
    return Environment(
        loader=FileSystemLoader(_TEMPLATE_DIR),
        autoescape=True,
        undefined=StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
    )


def parse_format(fmt: Union[str, ReportFormat]) -> ReportFormat:
    if isinstance(fmt, ReportFormat):
        return fmt
    try:
        return ReportFormat(str(fmt).lower())
    except ValueError as e:
        raise UnsupportedFormatError(f"Unsupported format: {fmt}") from e


def period_bounds(
    period: Union[str, ReportPeriod], now: Optional[datetime] = None
) -> tuple[datetime, Optional[datetime]]:
    """Returns the ``(since, before)`` window of a report period."""
    now = ensure_utc(now or utc_now())
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    try:
        period = ReportPeriod(period)
    except ValueError as e:
        raise UnsupportedFormatError(f"Unsupported report period: {period}") from e

    match period:
        case ReportPeriod.TODAY:
            return today, None
        case ReportPeriod.YESTERDAY:
            return today - timedelta(days=1), today
        case ReportPeriod.LAST_WEEK:
            return now - timedelta(weeks=1), None
        case ReportPeriod.LAST_MONTH:
            return now - timedelta(days=30), None
        case ReportPeriod.LAST_YEAR:
            return now - timedelta(days=365), None
        case _:
            raise UnsupportedFormatError(f"Unsupported report period: {period}")


def _diffs(records: list[SnapshotRecord]) -> list[Optional[DiffResult]]:
    """Diff of each record against the next older one in the list."""
    diffs: list[Optional[DiffResult]] = []
    for index, record in enumerate(records):
        older = records[index + 1] if index + 1 < len(records) else None
        if older is None:
            diffs.append(None)
            continue
        try:
            diffs.append(compute_diff(older, record))
        except InvalidSnapshotError:
            diffs.append(None)
    return diffs


def _render_html(context: dict[str, Any]) -> str:
    template = _environment().get_template(_HTML_TEMPLATE)
    return template.render(**context)


def _render_json(context: dict[str, Any]) -> str:
    snapshots = []
    for entry in context["entries"]:
        item = entry["record"].model_dump(mode="json")
        if context["include_diffs"]:
            diff = entry["diff"]
            item["diff"] = diff.to_dict() if diff is not None else None
        snapshots.append(item)

    return json.dumps(
        {
            "subject": {
                "type": context["subject_type"],
                "id": context["subject_id"],
            },
            "generated_at": context["generated_at"].isoformat(),
            "total_snapshots": len(snapshots),
            "snapshots": snapshots,
        },
        indent=2,
        ensure_ascii=False,
    )


def _render_csv(context: dict[str, Any]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    header = ["Label", "Event Type", "Created At"]
    if context["include_diffs"]:
        header.append("Changed Fields")
    writer.writerow(header)

    for entry in context["entries"]:
        record = entry["record"]
        row = [record.label, record.event_type.value, record.created_at.isoformat()]
        if context["include_diffs"]:
            diff = entry["diff"]
            row.append(";".join(diff.changed_fields) if diff is not None else "")
        writer.writerow(row)
    return buffer.getvalue()


def render_report(
    records: list[SnapshotRecord],
    subject_type: str,
    subject_id: str,
    fmt: Union[str, ReportFormat] = ReportFormat.HTML,
    include_diffs: bool = False,
    generated_at: Optional[datetime] = None,
) -> str:
    """Renders the history of one subject.

    Args:
        records: The subject's records, newest first.
        subject_type: The subject type shown in the report header.
        subject_id: The subject id shown in the report header.
        fmt: ``html``, ``json`` or ``csv``.
        include_diffs: Attach each record's diff against the previous one.
        generated_at: Timestamp printed in the report. Defaults to now.

    Returns:
        The rendered document.

    Raises:
        UnsupportedFormatError: If ``fmt`` is not a supported format.
    """
    report_format = parse_format(fmt)
    diffs = _diffs(records) if include_diffs else [None] * len(records)
    context = {
        "subject_type": subject_type,
        "subject_id": subject_id,
        "generated_at": ensure_utc(generated_at or utc_now()),
        "include_diffs": include_diffs,
        "entries": [
            {"record": record, "diff": diff} for record, diff in zip(records, diffs)
        ],
    }

    match report_format:
        case ReportFormat.HTML:
            return _render_html(context)
        case ReportFormat.JSON:
            return _render_json(context)
        case ReportFormat.CSV:
            return _render_csv(context)
        case _:
            raise UnsupportedFormatError(f"Unsupported format: {report_format}")
