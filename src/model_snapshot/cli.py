"""CLI tool for inspecting and maintaining stored snapshots."""

import json
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterator, Optional

import typer
from typing_extensions import Annotated

from model_snapshot.config import load_config
from model_snapshot.errors import SnapshotError
from model_snapshot.manager import SnapshotManager
from model_snapshot.models.enums import EventType
from model_snapshot.models.snapshot import SnapshotFilter, SnapshotRecord, utc_now
from model_snapshot.observability.logging import setup_logging
from model_snapshot.storage.factory import create_storage


app = typer.Typer(help="Model Snapshot Management CLI")


@app.callback()
def main(
    ctx: typer.Context,
    config: Annotated[
        Optional[Path],
        typer.Option(
            help="Path to a YAML configuration file",
            envvar="SNAPSHOT_CONFIG",
        ),
    ] = None,
    log_level: Annotated[
        str, typer.Option(help="Log level for diagnostics on stderr")
    ] = "WARNING",
):
    """Inspect, compare and prune stored snapshots."""
    setup_logging(log_level)
    ctx.obj = {"config": config}


def get_manager(ctx: typer.Context) -> SnapshotManager:
    config = load_config((ctx.obj or {}).get("config"))
    return SnapshotManager(create_storage(config), config)


@contextmanager
def handle_errors() -> Iterator[None]:
    try:
        yield
    except SnapshotError as e:
        typer.echo(f"Error: {e.detail}", err=True)
        raise typer.Exit(code=1)


def _format_record(record: SnapshotRecord) -> str:
    created = record.created_at.strftime("%Y-%m-%d %H:%M:%S")
    return (
        f"[{record.event_type.value}] {record.id}: {record.label} "
        f"({record.subject_type}#{record.subject_id}, {created})"
    )


def _echo_json(data) -> None:
    typer.echo(json.dumps(data, indent=2, ensure_ascii=False))


@app.command("list")
def list_snapshots(
    ctx: typer.Context,
    subject_type: Annotated[
        Optional[str], typer.Option(help="Filter by subject type")
    ] = None,
    subject_id: Annotated[
        Optional[str], typer.Option(help="Filter by subject id")
    ] = None,
    event: Annotated[
        Optional[EventType], typer.Option(help="Filter by event type")
    ] = None,
    label: Annotated[Optional[str], typer.Option(help="Filter by label")] = None,
    limit: Annotated[
        int, typer.Option(min=0, help="Maximum number of snapshots shown")
    ] = 20,
):
    """Lists snapshots, newest first."""
    with handle_errors():
        records = get_manager(ctx).list(
            SnapshotFilter(
                subject_type=subject_type,
                subject_id=subject_id,
                event_type=event,
                label=label,
                limit=limit,
            )
        )
    if not records:
        typer.echo("No snapshots found.")
        return

    for record in records:
        typer.echo(_format_record(record))


@app.command("show")
def show(
    ctx: typer.Context,
    id_or_label: Annotated[str, typer.Argument(help="Snapshot id or label")],
):
    """Prints one snapshot as JSON."""
    with handle_errors():
        record = get_manager(ctx).get(id_or_label)
    _echo_json(record.model_dump(mode="json"))


@app.command("diff")
def diff(
    ctx: typer.Context,
    first: Annotated[str, typer.Argument(help="Earlier snapshot id or label")],
    second: Annotated[str, typer.Argument(help="Later snapshot id or label")],
):
    """Prints the attribute changes between two snapshots."""
    with handle_errors():
        result = get_manager(ctx).compare(first, second)
    if result.is_empty:
        typer.echo("No differences.")
        return
    _echo_json(result.to_dict())


@app.command("delete")
def delete(
    ctx: typer.Context,
    id_or_label: Annotated[str, typer.Argument(help="Snapshot id or label")],
):
    """Deletes a single snapshot."""
    with handle_errors():
        deleted = get_manager(ctx).delete(id_or_label)
    if not deleted:
        typer.echo(f"Error: Snapshot not found: {id_or_label}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Snapshot deleted: {id_or_label}")


@app.command("clear")
def clear(
    ctx: typer.Context,
    subject_type: Annotated[
        Optional[str], typer.Option(help="Only snapshots of this subject type")
    ] = None,
    subject_id: Annotated[
        Optional[str], typer.Option(help="Only snapshots of this subject id")
    ] = None,
    event: Annotated[
        Optional[EventType], typer.Option(help="Only snapshots of this event type")
    ] = None,
    before: Annotated[
        Optional[datetime], typer.Option(help="Only snapshots created before (UTC)")
    ] = None,
    after: Annotated[
        Optional[datetime],
        typer.Option(help="Only snapshots created at or after (UTC)"),
    ] = None,
    dry_run: Annotated[
        bool, typer.Option(help="Show what would be deleted without deleting")
    ] = False,
    force: Annotated[bool, typer.Option(help="Skip the confirmation prompt")] = False,
):
    """Deletes snapshots matching the given filters."""
    with handle_errors():
        manager = get_manager(ctx)
        records = manager.list(
            SnapshotFilter(
                subject_type=subject_type,
                subject_id=subject_id,
                event_type=event,
                since=after,
                before=before,
            )
        )

        if not records:
            typer.echo("No snapshots found matching the criteria.")
            return

        if dry_run:
            typer.echo(f"Would delete {len(records)} snapshots:")
            for record in records:
                typer.echo(_format_record(record))
            return

        if not force:
            typer.confirm(f"Delete {len(records)} snapshots?", abort=True)

        narrowed = any(v is not None for v in (subject_id, event, before, after))
        if narrowed:
            deleted = sum(1 for record in records if manager.delete(record.id))
        else:
            deleted = manager.clear(subject_type)

    typer.echo(f"Deleted {deleted} snapshots.")


@app.command("purge")
def purge(
    ctx: typer.Context,
    days: Annotated[
        Optional[int],
        typer.Option(min=0, help="Retention in days; defaults to configuration"),
    ] = None,
    subject_type: Annotated[
        Optional[str], typer.Option(help="Only snapshots of this subject type")
    ] = None,
):
    """Deletes snapshots older than the retention window."""
    with handle_errors():
        manager = get_manager(ctx)
        if days is None:
            deleted = manager.purge_expired(subject_type=subject_type)
        else:
            deleted = manager.purge(utc_now() - timedelta(days=days), subject_type)
    typer.echo(f"Purged {deleted} snapshots.")


@app.command("stats")
def stats(
    ctx: typer.Context,
    subject_type: Annotated[
        Optional[str], typer.Option(help="Restrict to a subject type")
    ] = None,
    subject_id: Annotated[
        Optional[str], typer.Option(help="Restrict to a subject id")
    ] = None,
):
    """Prints snapshot statistics as JSON."""
    with handle_errors():
        result = get_manager(ctx).stats(subject_type, subject_id)
    _echo_json(result.model_dump(mode="json"))


@app.command("report")
def report(
    ctx: typer.Context,
    subject_type: Annotated[str, typer.Argument(help="Subject type")],
    subject_id: Annotated[str, typer.Argument(help="Subject id")],
    fmt: Annotated[
        str, typer.Option("--format", help="Output format: html, json or csv")
    ] = "html",
    period: Annotated[
        Optional[str],
        typer.Option(
            help="today, yesterday, last-week, last-month or last-year"
        ),
    ] = None,
    include_diffs: Annotated[
        Optional[bool],
        typer.Option(
            "--include-diffs/--no-include-diffs",
            help="Attach each snapshot's changes; defaults to configuration",
        ),
    ] = None,
    output: Annotated[
        Optional[Path], typer.Option(help="Write the report to this file")
    ] = None,
):
    """Renders the snapshot history of one subject."""
    with handle_errors():
        document = get_manager(ctx).report(
            subject_type,
            subject_id,
            fmt,
            period=period,
            include_diffs=include_diffs,
        )

    if output is None:
        typer.echo(document)
        return

    try:
        output.write_text(document, encoding="utf-8")
    except OSError as e:
        typer.echo(f"Error: Cannot write report to {output}: {e}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Report written to {output}")
