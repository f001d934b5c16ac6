"""FastAPI server exposing conflict detection and resolution."""

import logging

from fastapi import Body, FastAPI, HTTPException, Query
from fastapi.responses import Response

from .auto_merge import assess_auto_merge
from .backends import get_replica_providers
from .classifier import classify_conflict, recommend_strategies
from .errors import (
    BackupNotFoundError,
    IntegrityError,
    NoConflictError,
    StatusFileError,
    UnknownStrategyError,
    ValidationError,
)
from .export import snapshot_to_json, snapshot_to_markdown
from .resolver import ResolutionCoordinator
from .serialize import (
    assessment_to_dict,
    backup_to_dict,
    history_to_dict,
    report_to_dict,
    resolution_to_dict,
    snapshot_from_dict,
    snapshot_to_dict,
    version_from_dict,
)
from .status import SyncStatusStore

logger = logging.getLogger(__name__)

app = FastAPI(title="keepchat-sync", version="0.1.0")

# Lazily built on first request
_coordinator: ResolutionCoordinator | None = None
_status: SyncStatusStore | None = None


def _get_coordinator() -> ResolutionCoordinator:
    global _coordinator
    if _coordinator is None:
        _coordinator = ResolutionCoordinator()
        logger.info("Backups stored in %s", _coordinator.backups.base_dir)
    return _coordinator


def _get_status() -> SyncStatusStore:
    global _status
    if _status is None:
        _status = SyncStatusStore()
    return _status


def _baseline(payload: dict, session_id: str):
    """Use the baseline from the request, else the persisted one."""
    if payload.get("last_synced_version") is not None:
        return version_from_dict(payload["last_synced_version"])
    if not session_id:
        return None
    try:
        return _get_status().last_synced_version(session_id)
    except StatusFileError as e:
        logger.error("Ignoring unreadable sync status: %s", e)
        return None


def _report_from_payload(payload: dict):
    try:
        local = snapshot_from_dict(payload.get("local"))
        cloud = snapshot_from_dict(payload.get("cloud"))
    except (KeyError, TypeError, ValueError) as e:
        raise HTTPException(status_code=422, detail=f"Invalid snapshot: {e}")
    session_id = (local or cloud).session_id if (local or cloud) else ""
    return classify_conflict(local, cloud, _baseline(payload, session_id))


def _report_response(report) -> dict:
    data = report_to_dict(report)
    data["assessment"] = assessment_to_dict(assess_auto_merge(report))
    data["recommended_strategies"] = recommend_strategies(report)
    return data


# ── Routes ───────────────────────────────────────────────────────


@app.post("/api/conflicts/classify")
async def classify(payload: dict = Body(...)):
    """Classify the divergence between a local and a cloud snapshot."""
    return _report_response(_report_from_payload(payload))


@app.post("/api/conflicts/assess")
async def assess(payload: dict = Body(...)):
    """Return whether the conflict can be merged automatically."""
    return assessment_to_dict(assess_auto_merge(_report_from_payload(payload)))


@app.post("/api/conflicts/strategies")
async def strategies(payload: dict = Body(...)):
    """Return the recommended resolution strategies, best first."""
    return recommend_strategies(_report_from_payload(payload))


@app.post("/api/conflicts/resolve")
async def resolve(payload: dict = Body(...)):
    """Resolve a conflict with an explicit strategy."""
    strategy = payload.get("strategy")
    if not strategy:
        raise HTTPException(status_code=400, detail="strategy is required")

    report = _report_from_payload(payload)
    try:
        merged = snapshot_from_dict(payload.get("merged_session"))
    except (KeyError, TypeError, ValueError) as e:
        raise HTTPException(status_code=422, detail=f"Invalid merged session: {e}")

    try:
        result = _get_coordinator().resolve(report, strategy, merged_session=merged)
    except (NoConflictError, UnknownStrategyError, ValidationError) as e:
        raise HTTPException(status_code=400, detail=e.code)

    if result.success:
        try:
            _get_status().mark_synced(report.session_id, result.resolved_session.meta.version)
        except (OSError, StatusFileError) as e:
            logger.error("Failed to update sync baseline for %s: %s", report.session_id, e)
    elif not result.requires_user_input:
        raise HTTPException(status_code=500, detail=result.error)

    return resolution_to_dict(result)


@app.get("/api/sessions/{session_id}/conflict")
async def session_conflict(session_id: str):
    """Classify the stored local and cloud replicas of a session."""
    providers = get_replica_providers()
    try:
        local = providers["local"].get_snapshot(session_id)
        cloud = providers["cloud"].get_snapshot(session_id)
    except IntegrityError as e:
        raise HTTPException(status_code=409, detail=e.code)

    if local is None and cloud is None:
        raise HTTPException(status_code=404, detail="Session not found")

    report = classify_conflict(local, cloud, _baseline({}, session_id))
    return _report_response(report)


@app.get("/api/backups")
async def list_backups(
    session_id: str | None = Query(None, description="Filter by session"),
    include_expired: bool = Query(False),
):
    """Return backups, newest first."""
    entries = _get_coordinator().list_backups(session_id, include_expired=include_expired)
    return {
        "total": len(entries),
        "backups": [
            {k: v for k, v in backup_to_dict(e).items() if k != "session"} for e in entries
        ],
    }


@app.delete("/api/backups/expired")
async def purge_backups():
    """Delete expired backups."""
    deleted = _get_coordinator().backups.purge_expired()
    return {"deleted_count": len(deleted), "deleted": deleted}


@app.get("/api/backups/{backup_id}")
async def restore_backup(backup_id: str):
    """Return the snapshot stored in a backup."""
    try:
        snapshot = _get_coordinator().restore_backup(backup_id)
    except BackupNotFoundError:
        raise HTTPException(status_code=404, detail="Backup not found")
    return snapshot_to_dict(snapshot)


@app.get("/api/backups/{backup_id}/export")
async def export_backup(
    backup_id: str,
    format: str = Query("md", description="Export format: md or json"),
):
    """Export a backed-up snapshot as Markdown or JSON."""
    try:
        snapshot = _get_coordinator().restore_backup(backup_id)
    except BackupNotFoundError:
        raise HTTPException(status_code=404, detail="Backup not found")

    if format == "json":
        return Response(
            content=snapshot_to_json(snapshot),
            media_type="application/json",
            headers={"Content-Disposition": f'attachment; filename="{backup_id}.json"'},
        )
    return Response(
        content=snapshot_to_markdown(snapshot),
        media_type="text/markdown",
        headers={"Content-Disposition": f'attachment; filename="{backup_id}.md"'},
    )


@app.get("/api/history")
async def resolution_history(
    session_id: str | None = Query(None, description="Filter by session"),
    limit: int | None = Query(None, ge=1, le=100),
):
    """Return the resolution audit trail, newest first."""
    entries = _get_coordinator().get_resolution_history(session_id=session_id, limit=limit)
    return [history_to_dict(e) for e in entries]
