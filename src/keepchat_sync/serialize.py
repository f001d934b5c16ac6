"""JSON-ready conversion of the data model.

Snapshots arrive from the snapshot providers and leave through backups, the
resolution history and the HTTP API in this shape. Datetimes are ISO-8601
strings; enum values are their string value.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from .core import (
    AutoMergeAssessment,
    BackupEntry,
    ConflictReport,
    DiffResult,
    FileRef,
    HistoryEntry,
    Message,
    MetadataConflict,
    ResolutionResult,
    SessionContext,
    SessionMeta,
    SessionSnapshot,
    Version,
    VersionCheck,
    VersionResolution,
)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


# ── Messages and context ─────────────────────────────────────────


def message_to_dict(msg: Message) -> dict:
    return {
        "id": msg.id,
        "role": msg.role,
        "content": msg.content,
        "created_at": _iso(msg.created_at),
    }


def message_from_dict(data: dict) -> Message:
    return Message(
        id=str(data["id"]),
        role=data.get("role", "user"),
        content=data.get("content", ""),
        created_at=_parse_dt(data.get("created_at")),
    )


def context_to_dict(ctx: SessionContext) -> dict:
    return {
        "project_path": ctx.project_path,
        "files": [
            {"path": f.path, "content_hash": f.content_hash, "size_bytes": f.size_bytes}
            for f in ctx.files
        ],
        "active_files": list(ctx.active_files),
        "notes": ctx.notes,
    }


def context_from_dict(data: Optional[dict]) -> SessionContext:
    data = data or {}
    return SessionContext(
        project_path=data.get("project_path"),
        files=tuple(
            FileRef(path=f["path"], content_hash=f.get("content_hash"), size_bytes=f.get("size_bytes"))
            for f in data.get("files") or []
        ),
        active_files=tuple(data.get("active_files") or []),
        notes=data.get("notes"),
    )


# ── Versions and snapshots ───────────────────────────────────────


def version_to_dict(version: Optional[Version]) -> Optional[dict]:
    if version is None:
        return None
    data = {
        "number": version.number,
        "timestamp": _iso(version.timestamp),
        "device_id": version.device_id,
        "author": version.author,
        "previous_number": version.previous_number,
        "previous_timestamp": _iso(version.previous_timestamp),
        "synced_at": _iso(version.synced_at),
        "resolution": None,
    }
    if version.resolution is not None:
        data["resolution"] = {
            "strategy": version.resolution.strategy,
            "local_number": version.resolution.local_number,
            "cloud_number": version.resolution.cloud_number,
        }
    return data


def version_from_dict(data: Any) -> Optional[Version]:
    if data is None:
        return None
    if isinstance(data, int):
        return Version(number=data)
    resolution = data.get("resolution")
    return Version(
        number=int(data["number"]),
        timestamp=_parse_dt(data.get("timestamp")),
        device_id=data.get("device_id", ""),
        author=data.get("author", "system"),
        previous_number=data.get("previous_number"),
        previous_timestamp=_parse_dt(data.get("previous_timestamp")),
        synced_at=_parse_dt(data.get("synced_at")),
        resolution=VersionResolution(**resolution) if resolution else None,
    )


def meta_to_dict(meta: SessionMeta) -> dict:
    return {
        "session_id": meta.session_id,
        "version": version_to_dict(meta.version),
        "message_count": meta.message_count,
        "device": meta.device,
        "project_path": meta.project_path,
        "created_at": _iso(meta.created_at),
        "updated_at": _iso(meta.updated_at),
        "hash": meta.hash,
        "conflict_resolved": meta.conflict_resolved,
        "resolution_strategy": meta.resolution_strategy,
        "auto_merged": meta.auto_merged,
        "restored_from": meta.restored_from,
        "merge_strategy": meta.merge_strategy,
        "appended_count": meta.appended_count,
        "duplicates_removed": meta.duplicates_removed,
    }


def meta_from_dict(data: dict) -> SessionMeta:
    return SessionMeta(
        session_id=str(data["session_id"]),
        version=version_from_dict(data.get("version")),
        message_count=int(data.get("message_count") or 0),
        device=data.get("device") or "",
        project_path=data.get("project_path") or "",
        created_at=_parse_dt(data.get("created_at")),
        updated_at=_parse_dt(data.get("updated_at")),
        hash=data.get("hash"),
        conflict_resolved=bool(data.get("conflict_resolved", False)),
        resolution_strategy=data.get("resolution_strategy"),
        auto_merged=bool(data.get("auto_merged", False)),
        restored_from=data.get("restored_from"),
        merge_strategy=data.get("merge_strategy"),
        appended_count=data.get("appended_count"),
        duplicates_removed=data.get("duplicates_removed"),
    )


def snapshot_to_dict(snapshot: Optional[SessionSnapshot]) -> Optional[dict]:
    if snapshot is None:
        return None
    return {
        "meta": meta_to_dict(snapshot.meta),
        "messages": [message_to_dict(m) for m in snapshot.messages],
        "context": context_to_dict(snapshot.context),
    }


def snapshot_from_dict(data: Optional[dict]) -> Optional[SessionSnapshot]:
    if data is None:
        return None
    return SessionSnapshot(
        meta=meta_from_dict(data["meta"]),
        messages=tuple(message_from_dict(m) for m in data.get("messages") or []),
        context=context_from_dict(data.get("context")),
    )


# ── Reports and results ──────────────────────────────────────────


def diff_to_dict(diff: DiffResult) -> dict:
    return {
        "only_local": [message_to_dict(m) for m in diff.only_local],
        "only_cloud": [message_to_dict(m) for m in diff.only_cloud],
        "modified_overlap": [
            {"id": d.id, "local_content": d.local_content, "cloud_content": d.cloud_content}
            for d in diff.modified_overlap
        ],
        "only_local_count": diff.only_local_count,
        "only_cloud_count": diff.only_cloud_count,
        "modified_overlap_count": diff.modified_overlap_count,
    }


def metadata_conflict_to_dict(mc: MetadataConflict) -> dict:
    return {"conflicts": [{"field": c.field, "local": c.local, "cloud": c.cloud} for c in mc.conflicts]}


def version_check_to_dict(check: VersionCheck) -> dict:
    return {
        "has_conflict": check.has_conflict,
        "reason": check.reason,
        "local_version": version_to_dict(check.local_version),
        "cloud_version": version_to_dict(check.cloud_version),
        "last_synced_version": version_to_dict(check.last_synced_version),
        "needs_sync": check.needs_sync,
        "synced": check.synced,
        "direction": _enum_value(check.direction),
    }


def report_to_dict(report: ConflictReport, include_sessions: bool = False) -> dict:
    data = {
        "has_conflict": report.has_conflict,
        "conflict_type": _enum_value(report.conflict_type),
        "severity": _enum_value(report.severity),
        "reason": report.reason,
        "session_id": report.session_id,
        "data_conflict": diff_to_dict(report.data_conflict) if report.data_conflict else None,
        "metadata_conflict": (
            metadata_conflict_to_dict(report.metadata_conflict) if report.metadata_conflict else None
        ),
        "version_conflict": (
            version_check_to_dict(report.version_conflict) if report.version_conflict else None
        ),
        "needs_sync": report.needs_sync,
        "sync_direction": _enum_value(report.sync_direction),
    }
    if include_sessions:
        data["local_session"] = snapshot_to_dict(report.local_session)
        data["cloud_session"] = snapshot_to_dict(report.cloud_session)
    return data


def assessment_to_dict(assessment: AutoMergeAssessment) -> dict:
    return {
        "can_auto_merge": assessment.can_auto_merge,
        "strategy": _enum_value(assessment.strategy),
        "reason": assessment.reason,
        "details": dict(assessment.details),
    }


def _jsonable(value: Any) -> Any:
    if isinstance(value, SessionSnapshot):
        return snapshot_to_dict(value)
    if isinstance(value, Version):
        return version_to_dict(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return _enum_value(value)


def _preview_to_dict(preview: Optional[dict]) -> Optional[dict]:
    if preview is None:
        return None
    return _jsonable(preview)


def resolution_to_dict(result: ResolutionResult) -> dict:
    return {
        "success": result.success,
        "strategy": result.strategy,
        "resolved_session": snapshot_to_dict(result.resolved_session),
        "overwritten_session": snapshot_to_dict(result.overwritten_session),
        "backup_id": result.backup_id,
        "backup_ids": list(result.backup_ids),
        "auto_merged": result.auto_merged,
        "requires_user_input": result.requires_user_input,
        "merge_preview": _preview_to_dict(result.merge_preview),
        "error": result.error,
        "message": result.message,
        "timestamp": _iso(result.timestamp),
    }


# ── Persisted records ────────────────────────────────────────────


def backup_to_dict(entry: BackupEntry) -> dict:
    return {
        "backup_id": entry.backup_id,
        "session_id": entry.session_id,
        "backup_type": entry.backup_type,
        "timestamp": entry.timestamp,
        "backed_up_at": _iso(entry.backed_up_at),
        "expires_at": _iso(entry.expires_at),
        "session": snapshot_to_dict(entry.session),
        "reason": entry.reason,
    }


def backup_from_dict(data: dict) -> BackupEntry:
    return BackupEntry(
        backup_id=data["backup_id"],
        session_id=data["session_id"],
        backup_type=data["backup_type"],
        timestamp=int(data["timestamp"]),
        backed_up_at=_parse_dt(data["backed_up_at"]),
        expires_at=_parse_dt(data["expires_at"]),
        session=snapshot_from_dict(data["session"]),
        reason=data.get("reason", "conflict_resolution"),
    )


def history_to_dict(entry: HistoryEntry) -> dict:
    return {
        "session_id": entry.session_id,
        "timestamp": entry.timestamp,
        "resolved_at": _iso(entry.resolved_at),
        "conflict_type": entry.conflict_type,
        "conflict_severity": entry.conflict_severity,
        "resolution_strategy": entry.resolution_strategy,
        "success": entry.success,
        "auto_merged": entry.auto_merged,
        "conflict_reason": entry.conflict_reason,
        "backup_created": entry.backup_created,
        "backup_id": entry.backup_id,
    }


def history_from_dict(data: dict) -> HistoryEntry:
    return HistoryEntry(
        session_id=data["session_id"],
        timestamp=int(data["timestamp"]),
        resolved_at=_parse_dt(data["resolved_at"]),
        conflict_type=data.get("conflict_type", ""),
        conflict_severity=data.get("conflict_severity", ""),
        resolution_strategy=data.get("resolution_strategy", ""),
        success=bool(data.get("success", False)),
        auto_merged=bool(data.get("auto_merged", False)),
        conflict_reason=data.get("conflict_reason", ""),
        backup_created=bool(data.get("backup_created", False)),
        backup_id=data.get("backup_id"),
    )
