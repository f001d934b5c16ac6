"""Apply a resolution strategy to a conflict report.

The coordinator is the only component with side effects: it stamps the new
version, backs up every snapshot a resolution supersedes and appends to the
resolution history. Resolutions for the same session are serialized, since
each one bumps the version counter.
"""

import logging
import threading
import weakref
from dataclasses import dataclass, field, replace
from typing import Optional

from .auto_merge import assess_auto_merge, perform_auto_merge, recommended_actions, source_and_target
from .classifier import classify_conflict, recommend_strategies
from .core import (
    AutoMergeAssessment,
    ConflictReport,
    ConflictType,
    ResolutionResult,
    ResolutionStrategy,
    SessionSnapshot,
    Version,
)
from .errors import (
    BackupWriteError,
    CannotAutoMergeError,
    HistoryWriteError,
    NoConflictError,
    UnknownStrategyError,
    ValidationError,
)
from .integrity import compute_snapshot_hash
from .merger import merge_contexts
from .store import BackupStore, HistoryStore
from .synclog import log_sync_error
from .version import Baseline, VersionClock, version_or_zero

logger = logging.getLogger(__name__)

PREVIEW_CHARS = 100


@dataclass
class ReconcileOutcome:
    """Everything a caller needs after comparing two replicas."""

    report: ConflictReport
    assessment: AutoMergeAssessment
    strategies: list[str] = field(default_factory=list)
    result: Optional[ResolutionResult] = None


@dataclass
class _Plan:
    result: ResolutionResult
    backups: list[tuple[SessionSnapshot, str]] = field(default_factory=list)


def summarize_session(snapshot: Optional[SessionSnapshot]) -> Optional[dict]:
    if snapshot is None:
        return None
    meta = snapshot.meta
    return {
        "session_id": meta.session_id,
        "version": meta.version.number if meta.version else 1,
        "message_count": meta.message_count or len(snapshot.messages),
        "last_updated": meta.updated_at,
        "device": meta.device,
        "project_path": meta.project_path or snapshot.context.project_path,
        "preview": snapshot.messages[-1].content[:200] if snapshot.messages else "No messages",
    }


def conflict_details(report: ConflictReport) -> dict:
    """Side-by-side description of a conflict for a human to decide on."""
    if not report.has_conflict:
        return {"has_conflict": False, "message": "No conflict detected. Sessions are in sync."}

    details = {
        "has_conflict": True,
        "type": report.conflict_type.value,
        "severity": report.severity.value,
        "reason": report.reason,
    }

    vc = report.version_conflict
    if vc is not None:
        details["versions"] = {
            "local": vc.local_version,
            "cloud": vc.cloud_version,
            "last_synced": vc.last_synced_version,
        }

    dc = report.data_conflict
    if dc is not None:
        local_by_id = {m.id: m for m in report.local_session.messages}
        details["data"] = {
            "only_local": [
                {"id": m.id, "role": m.role, "created_at": m.created_at, "preview": m.content[:PREVIEW_CHARS]}
                for m in dc.only_local
            ],
            "only_cloud": [
                {"id": m.id, "role": m.role, "created_at": m.created_at, "preview": m.content[:PREVIEW_CHARS]}
                for m in dc.only_cloud
            ],
            "modified_overlap": [
                {
                    "id": d.id,
                    "role": local_by_id[d.id].role if d.id in local_by_id else None,
                    "created_at": local_by_id[d.id].created_at if d.id in local_by_id else None,
                    "local_preview": d.local_content[:PREVIEW_CHARS],
                    "cloud_preview": d.cloud_content[:PREVIEW_CHARS],
                }
                for d in dc.modified_overlap
            ],
        }

    if report.metadata_conflict is not None:
        details["metadata"] = {
            "conflicts": [
                {"field": c.field, "local": c.local, "cloud": c.cloud}
                for c in report.metadata_conflict.conflicts
            ]
        }

    details["session_summaries"] = {
        "local": summarize_session(report.local_session),
        "cloud": summarize_session(report.cloud_session),
    }
    return details


def validate_resolution_result(result: ResolutionResult) -> tuple[list[str], list[str]]:
    """Return ``(errors, warnings)``. Errors name the missing field."""
    errors: list[str] = []
    warnings: list[str] = []

    session = result.resolved_session
    if session is None:
        errors.append("resolved_session")
        return errors, warnings
    if session.meta.version is None:
        errors.append("version")
    if session.messages is None:
        errors.append("messages")
    elif not session.messages:
        warnings.append("Resolved session has no messages")
    return errors, warnings


class ResolutionCoordinator:
    """Resolves conflicts and keeps the backup and history stores current."""

    def __init__(
        self,
        clock: VersionClock | None = None,
        backups: BackupStore | None = None,
        history: HistoryStore | None = None,
    ):
        self.clock = clock or VersionClock()
        self.backups = backups or BackupStore()
        self.history = history or HistoryStore()
        # Entries vanish once no resolution holds the lock
        self._locks: weakref.WeakValueDictionary[str, threading.Lock] = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    def _session_lock(self, session_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = self._locks[session_id] = threading.Lock()
            return lock

    # ── Public API ───────────────────────────────────────────────

    def reconcile(
        self,
        local: Optional[SessionSnapshot],
        cloud: Optional[SessionSnapshot],
        last_synced_version: Baseline = None,
    ) -> ReconcileOutcome:
        """Classify two replicas and auto-merge when that is provably lossless.

        Conflicts that need a human come back with the report and the ranked
        strategies; no side is ever picked on the caller's behalf.
        """
        report = classify_conflict(local, cloud, last_synced_version)
        assessment = assess_auto_merge(report)
        outcome = ReconcileOutcome(
            report=report,
            assessment=assessment,
            strategies=recommend_strategies(report),
        )
        if assessment.can_auto_merge:
            outcome.result = self.resolve(report, ResolutionStrategy.AUTO_MERGE)
        return outcome

    def resolve(
        self,
        report: ConflictReport,
        strategy: ResolutionStrategy | str,
        merged_session: Optional[SessionSnapshot] = None,
    ) -> ResolutionResult:
        """Resolve ``report`` with ``strategy``.

        Raises ``NoConflictError`` for a report without a conflict and
        ``UnknownStrategyError`` for an unknown strategy name. Storage
        failures come back as a failed result.
        """
        if not report.has_conflict:
            raise NoConflictError("No conflict to resolve")
        try:
            strategy = ResolutionStrategy(strategy)
        except ValueError:
            raise UnknownStrategyError(f"Unknown resolution strategy: {strategy}") from None

        session_id = report.session_id
        with self._session_lock(session_id):
            plan = self._plan(report, strategy, merged_session)
            result = plan.result
            if not result.success:
                return result

            errors, warnings = validate_resolution_result(result)
            for warning in warnings:
                logger.warning("%s: %s", session_id, warning)
            if errors:
                raise ValidationError(errors[0], f"Resolution produced an invalid session: {errors}")

            try:
                for snapshot, backup_type in plan.backups:
                    entry = self.backups.create(session_id, snapshot, backup_type)
                    result.backup_ids.append(entry.backup_id)
            except BackupWriteError as e:
                log_sync_error(session_id, "backup", e)
                failed = ResolutionResult(
                    success=False,
                    strategy=result.strategy,
                    backup_ids=result.backup_ids,
                    backup_id=result.backup_ids[0] if result.backup_ids else None,
                    error=e.code,
                    message=str(e),
                    timestamp=self.clock.clock(),
                )
                self._record(report, failed, session_id)
                return failed

            result.backup_id = result.backup_ids[0] if result.backup_ids else None

            try:
                self.history.record_conflict_resolution(report, result, session_id)
            except HistoryWriteError as e:
                log_sync_error(session_id, "history", e)
                return replace(
                    result, success=False, resolved_session=None, error=e.code, message=str(e)
                )

            logger.info(
                "Resolved %s conflict on %s with %s (v%d)",
                report.conflict_type.value, session_id, result.strategy,
                result.resolved_session.meta.version.number,
            )
            return result

    def list_backups(self, session_id: str | None = None, include_expired: bool = False):
        return self.backups.list_backups(session_id, include_expired=include_expired)

    def restore_backup(self, backup_id: str) -> SessionSnapshot:
        return self.backups.restore(backup_id)

    def get_resolution_history(self, session_id: str | None = None, limit: int | None = None):
        return self.history.get(session_id=session_id, limit=limit)

    # ── Strategy handlers ────────────────────────────────────────

    def _record(self, report: ConflictReport, result: ResolutionResult, session_id: str) -> None:
        try:
            self.history.record_conflict_resolution(report, result, session_id)
        except HistoryWriteError as e:
            log_sync_error(session_id, "history", e)

    def _finalize(self, snapshot: SessionSnapshot, version: Version, strategy: str, **meta) -> SessionSnapshot:
        stamped = replace(
            snapshot,
            meta=replace(
                snapshot.meta,
                version=version,
                updated_at=version.timestamp,
                message_count=len(snapshot.messages),
                conflict_resolved=True,
                resolution_strategy=strategy,
                **meta,
            ),
        )
        return replace(stamped, meta=replace(stamped.meta, hash=compute_snapshot_hash(stamped)))

    def _plan(
        self,
        report: ConflictReport,
        strategy: ResolutionStrategy,
        merged_session: Optional[SessionSnapshot],
    ) -> _Plan:
        if strategy == ResolutionStrategy.KEEP_LOCAL:
            return self._keep(report, keep="local")
        if strategy == ResolutionStrategy.KEEP_CLOUD:
            return self._keep(report, keep="cloud")
        if strategy == ResolutionStrategy.MANUAL_MERGE:
            return self._manual_merge(report, merged_session)
        if strategy == ResolutionStrategy.MERGE_METADATA:
            return self._merge_metadata(report)
        if strategy == ResolutionStrategy.AUTO_MERGE:
            return self._auto_merge(report)
        raise UnknownStrategyError(f"Unhandled resolution strategy: {strategy}")

    def _keep(self, report: ConflictReport, keep: str) -> _Plan:
        if keep == "local":
            chosen, other, other_type = report.local_session, report.cloud_session, "cloud"
            strategy = ResolutionStrategy.KEEP_LOCAL.value
        else:
            chosen, other, other_type = report.cloud_session, report.local_session, "local"
            strategy = ResolutionStrategy.KEEP_CLOUD.value

        version = self.clock.increment(
            version_or_zero(chosen.meta),
            author=f"{strategy}_resolution",
            floor=version_or_zero(other.meta).number,
        )
        resolved = self._finalize(chosen, version, strategy)
        return _Plan(
            result=ResolutionResult(
                success=True,
                strategy=strategy,
                resolved_session=resolved,
                overwritten_session=other,
                timestamp=version.timestamp,
            ),
            backups=[(other, other_type)],
        )

    def _manual_merge(self, report: ConflictReport, merged_session: Optional[SessionSnapshot]) -> _Plan:
        local, cloud = report.local_session, report.cloud_session
        strategy = ResolutionStrategy.MANUAL_MERGE.value
        version = self.clock.merge_version(version_or_zero(local.meta), version_or_zero(cloud.meta), strategy)

        if merged_session is None:
            return _Plan(result=ResolutionResult(
                success=False,
                strategy=strategy,
                requires_user_input=True,
                error="requires_user_input",
                merge_preview={
                    "local": local,
                    "cloud": cloud,
                    "version": version,
                    "details": conflict_details(report),
                    "recommended_strategies": recommend_strategies(report),
                },
                message="Manual merge requires user input to complete",
                timestamp=version.timestamp,
            ))

        resolved = self._finalize(merged_session, version, strategy)
        return _Plan(
            result=ResolutionResult(
                success=True,
                strategy=strategy,
                resolved_session=resolved,
                timestamp=version.timestamp,
            ),
            backups=[(local, "local"), (cloud, "cloud")],
        )

    def _merge_metadata(self, report: ConflictReport) -> _Plan:
        if report.conflict_type != ConflictType.METADATA_CONFLICT:
            raise ValidationError(
                "strategy", "merge_metadata only applies to metadata conflicts"
            )
        local, cloud = report.local_session, report.cloud_session
        strategy = ResolutionStrategy.MERGE_METADATA.value
        version = self.clock.merge_version(version_or_zero(local.meta), version_or_zero(cloud.meta), strategy)

        paths = [p for p in (local.meta.project_path, cloud.meta.project_path) if p]
        merged = replace(
            local,
            meta=replace(
                local.meta,
                project_path=max(paths, key=len) if paths else "",
                device=self.clock.identity.device_id(),
            ),
            context=merge_contexts(cloud.context, local.context),
        )
        resolved = self._finalize(merged, version, strategy)
        return _Plan(
            result=ResolutionResult(
                success=True,
                strategy=strategy,
                resolved_session=resolved,
                overwritten_session=cloud,
                timestamp=version.timestamp,
            ),
            backups=[(cloud, "cloud")],
        )

    def _auto_merge(self, report: ConflictReport) -> _Plan:
        try:
            assessment, merged = perform_auto_merge(report, self.clock, now=self.clock.clock())
        except CannotAutoMergeError as e:
            assessment = assess_auto_merge(report)
            return _Plan(result=ResolutionResult(
                success=False,
                strategy=ResolutionStrategy.AUTO_MERGE.value,
                requires_user_input=True,
                error=e.code,
                merge_preview={
                    "details": conflict_details(report),
                    "recommended_strategies": recommend_strategies(report),
                    "recommended_actions": recommended_actions(assessment, report),
                },
                message="Conflict requires manual intervention",
                timestamp=self.clock.clock(),
            ))

        _, target = source_and_target(report, assessment.strategy)
        target_type = "cloud" if target is report.cloud_session else "local"
        label = merged.meta.resolution_strategy
        resolved = self._finalize(merged, merged.meta.version, label, auto_merged=True)
        return _Plan(
            result=ResolutionResult(
                success=True,
                strategy=label,
                resolved_session=resolved,
                overwritten_session=target,
                auto_merged=True,
                timestamp=resolved.meta.version.timestamp,
            ),
            backups=[(target, target_type)],
        )
