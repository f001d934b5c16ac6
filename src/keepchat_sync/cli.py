"""CLI entry point for keepchat-sync."""

import json
import logging
from pathlib import Path

import click
import uvicorn

from .classifier import classify_conflict, recommend_strategies
from .errors import SyncError
from .export import backup_report, conflict_report_to_text
from .resolver import ResolutionCoordinator
from .serialize import history_to_dict, resolution_to_dict, snapshot_from_dict, version_from_dict


def _load_snapshot(path: Path):
    try:
        return snapshot_from_dict(json.loads(path.read_text(encoding="utf-8")))
    except (json.JSONDecodeError, KeyError, ValueError) as e:
        raise click.BadParameter(f"{path} is not a valid session snapshot: {e}")


@click.group()
@click.option("--log-level", default="WARNING", help="Logging level.")
def main(log_level: str):
    """Detect and resolve conflicts between local and cloud chat sessions."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.option("--port", default=8080, help="Port to serve on.")
@click.option("--host", default="127.0.0.1", help="Host to bind to.")
def serve(port: int, host: str):
    """Start the HTTP API."""
    click.echo(f"Starting keepchat-sync on http://{host}:{port}")
    uvicorn.run("keepchat_sync.server:app", host=host, port=port, reload=False)


@main.command()
@click.argument("local", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("cloud", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--last-synced", type=int, default=None, help="Version number of the last sync.")
def check(local: Path, cloud: Path, last_synced: int | None):
    """Classify the conflict between two snapshot files."""
    report = classify_conflict(_load_snapshot(local), _load_snapshot(cloud), last_synced)
    click.echo(conflict_report_to_text(report))
    if report.has_conflict:
        click.echo("Recommended: " + ", ".join(recommend_strategies(report)))
    elif report.needs_sync and report.sync_direction:
        click.echo(f"No conflict; needs {report.sync_direction.value}.")


@main.command()
@click.argument("local", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("cloud", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--strategy", required=True, help="keep_local, keep_cloud, manual_merge, merge_metadata or auto_merge.")
@click.option("--merged", type=click.Path(exists=True, dir_okay=False, path_type=Path), default=None,
              help="Pre-built merged snapshot for manual_merge.")
@click.option("--last-synced", type=int, default=None, help="Version number of the last sync.")
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Write the resolved snapshot here instead of stdout.")
def resolve(local: Path, cloud: Path, strategy: str, merged: Path | None, last_synced: int | None,
            output: Path | None):
    """Resolve the conflict between two snapshot files."""
    report = classify_conflict(
        _load_snapshot(local), _load_snapshot(cloud), version_from_dict(last_synced)
    )
    merged_session = _load_snapshot(merged) if merged else None

    try:
        result = ResolutionCoordinator().resolve(report, strategy, merged_session=merged_session)
    except SyncError as e:
        raise click.ClickException(e.code)

    data = resolution_to_dict(result)
    if not result.success:
        click.echo(json.dumps(data, indent=2, ensure_ascii=False))
        raise SystemExit(1)

    resolved = json.dumps(data["resolved_session"], indent=2, ensure_ascii=False)
    if output:
        output.write_text(resolved, encoding="utf-8")
        click.echo(f"Resolved with {result.strategy}; backup {result.backup_id}")
    else:
        click.echo(resolved)


@main.command()
@click.option("--session", "session_id", default=None, help="Only this session.")
@click.option("--all", "include_expired", is_flag=True, help="Include expired backups.")
def backups(session_id: str | None, include_expired: bool):
    """List conflict backups."""
    entries = ResolutionCoordinator().list_backups(session_id, include_expired=include_expired)
    click.echo(backup_report(entries, session_id))


@main.command()
def purge():
    """Delete expired backups."""
    deleted = ResolutionCoordinator().backups.purge_expired()
    click.echo(f"Deleted {len(deleted)} expired backups")


@main.command()
@click.option("--session", "session_id", default=None, help="Only this session.")
@click.option("--limit", default=20, help="Maximum entries to show.")
def history(session_id: str | None, limit: int):
    """Show the conflict resolution history."""
    entries = ResolutionCoordinator().get_resolution_history(session_id=session_id, limit=limit)
    click.echo(json.dumps([history_to_dict(e) for e in entries], indent=2, ensure_ascii=False))
