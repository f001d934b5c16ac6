"""Render snapshots, conflict reports and backups as Markdown and JSON."""

import json
from datetime import datetime, timezone

from .core import BackupEntry, ConflictReport, SessionSnapshot
from .serialize import snapshot_to_dict
from .version import format_duration, format_version


def snapshot_to_markdown(snapshot: SessionSnapshot) -> str:
    """Export a snapshot and its messages as clean Markdown."""
    meta = snapshot.meta
    lines = [f"# Session {meta.session_id}", ""]

    if meta.project_path or snapshot.context.project_path:
        lines.append(f"**Project:** {meta.project_path or snapshot.context.project_path}")
    if meta.device:
        lines.append(f"**Device:** {meta.device}")
    lines.append(f"**Version:** {format_version(meta.version)}")
    if meta.updated_at:
        lines.append(f"**Updated:** {meta.updated_at.isoformat()}")
    lines.append(f"**Messages:** {len(snapshot.messages)}")
    if meta.resolution_strategy:
        lines.append(f"**Resolved with:** {meta.resolution_strategy}")
    lines.extend(["", "---", ""])

    for msg in snapshot.messages:
        role_label = msg.role.capitalize()
        ts = ""
        if msg.created_at:
            ts = f" ({msg.created_at.strftime('%Y-%m-%d %H:%M')})"
        lines.append(f"## {role_label}{ts}")
        lines.append("")
        lines.append(msg.content)
        lines.extend(["", "---", ""])

    if snapshot.context.notes:
        lines.extend(["## Notes", "", snapshot.context.notes, ""])

    return "\n".join(lines)


def snapshot_to_json(snapshot: SessionSnapshot) -> str:
    """Export a snapshot as structured JSON."""
    return json.dumps(snapshot_to_dict(snapshot), indent=2, ensure_ascii=False)


def conflict_report_to_text(report: ConflictReport) -> str:
    if not report.has_conflict:
        return "No conflict detected."

    lines = [
        "=== Conflict Report ===",
        "",
        f"Type: {report.conflict_type.value}",
        f"Severity: {report.severity.value}",
        f"Reason: {report.reason}",
        "",
    ]

    vc = report.version_conflict
    if vc is not None:
        lines.append("Versions:")
        lines.append(f"  Local: {format_version(vc.local_version)}")
        lines.append(f"  Cloud: {format_version(vc.cloud_version)}")
        if vc.last_synced_version is not None:
            lines.append(f"  Last synced: v{vc.last_synced_version.number}")
        lines.append("")

    dc = report.data_conflict
    if dc is not None:
        lines.append("Data Conflicts:")
        lines.append(f"  Only in local: {dc.only_local_count} messages")
        lines.append(f"  Only in cloud: {dc.only_cloud_count} messages")
        lines.append(f"  Modified overlaps: {dc.modified_overlap_count} messages")
        for i, d in enumerate(dc.modified_overlap, 1):
            lines.append(f"  {i}. Message {d.id}")
            lines.append(f"     Local: {d.local_content[:100]}")
            lines.append(f"     Cloud: {d.cloud_content[:100]}")
        lines.append("")

    if report.metadata_conflict is not None:
        lines.append("Metadata Conflicts:")
        for c in report.metadata_conflict.conflicts:
            lines.append(f"  {c.field}:")
            lines.append(f"    Local: {c.local}")
            lines.append(f"    Cloud: {c.cloud}")
        lines.append("")

    lines.append("=== End of Report ===")
    return "\n".join(lines)


def backup_report(backups: list[BackupEntry], session_id: str | None = None, now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    lines = [
        "=== Conflict Backup Report ===",
        "",
        f"Session: {session_id}" if session_id else "Sessions: All",
        f"Total backups: {len(backups)}",
        "",
    ]

    if not backups:
        lines.append("No backups found.")
    else:
        lines.append("Backups:")
        for index, backup in enumerate(backups, 1):
            age = format_duration((now - backup.backed_up_at).total_seconds() * 1000)
            expired = " [EXPIRED]" if backup.expires_at < now else ""
            lines.append(f"{index}. {backup.backup_id} ({backup.backup_type}) {age} ago{expired}")
            lines.append(f"   Session: {backup.session_id}")
            lines.append(f"   Created: {backup.backed_up_at.isoformat()}")
            lines.append(f"   Messages: {len(backup.session.messages)}")
            lines.append("")

    lines.append("=== End of Report ===")
    return "\n".join(lines)
