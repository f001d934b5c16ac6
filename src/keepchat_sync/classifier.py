"""Combine version, message and metadata comparisons into a ConflictReport.

Checks run in a fixed order and the first match wins:

1. a missing snapshot on either side yields no conflict
2. both replicas advanced past the baseline: concurrent modification
3. message sets or texts differ: data conflict
4. project path, device or message count differ: metadata conflict
5. otherwise no conflict, with the push/pull hint from the version check

Classification never raises and has no side effects, so it is safe to re-run.
"""

import logging
from typing import Optional

from .core import (
    ConflictReport,
    ConflictType,
    DiffResult,
    FieldConflict,
    MetadataConflict,
    ResolutionStrategy,
    SessionMeta,
    SessionSnapshot,
    Severity,
)
from .differ import diff_messages
from .version import Baseline, detect_concurrent_modification, version_or_zero

logger = logging.getLogger(__name__)


def data_severity(diff: DiffResult) -> Severity:
    """Text edits on both sides are high; any other message divergence is medium."""
    if diff.modified_overlap:
        return Severity.HIGH
    if diff.only_local or diff.only_cloud:
        return Severity.MEDIUM
    return Severity.LOW


def detect_metadata_conflict(local_meta: SessionMeta, cloud_meta: SessionMeta) -> MetadataConflict:
    conflicts = []

    if (
        local_meta.project_path
        and cloud_meta.project_path
        and local_meta.project_path != cloud_meta.project_path
    ):
        conflicts.append(FieldConflict("project_path", local_meta.project_path, cloud_meta.project_path))

    if local_meta.device and cloud_meta.device and local_meta.device != cloud_meta.device:
        conflicts.append(FieldConflict("device", local_meta.device, cloud_meta.device))

    if local_meta.message_count != cloud_meta.message_count:
        conflicts.append(FieldConflict("message_count", local_meta.message_count, cloud_meta.message_count))

    return MetadataConflict(conflicts=tuple(conflicts))


def classify_conflict(
    local: Optional[SessionSnapshot],
    cloud: Optional[SessionSnapshot],
    last_synced_version: Baseline = None,
) -> ConflictReport:
    """Classify the divergence between the local and cloud replica of a session."""
    if local is None or cloud is None:
        return ConflictReport(
            has_conflict=False,
            reason="missing_session_data",
            local_session=local,
            cloud_session=cloud,
        )

    version_check = detect_concurrent_modification(
        version_or_zero(local.meta), version_or_zero(cloud.meta), last_synced_version
    )

    if version_check.has_conflict:
        logger.info("Session %s modified on both replicas since last sync", local.session_id)
        return ConflictReport(
            has_conflict=True,
            conflict_type=ConflictType.CONCURRENT_MODIFICATION,
            severity=Severity.HIGH,
            reason="both_sides_modified",
            local_session=local,
            cloud_session=cloud,
            version_conflict=version_check,
        )

    diff = diff_messages(local.messages, cloud.messages)
    if diff.has_differences:
        return ConflictReport(
            has_conflict=True,
            conflict_type=ConflictType.DATA_CONFLICT,
            severity=data_severity(diff),
            reason="data_divergence",
            local_session=local,
            cloud_session=cloud,
            data_conflict=diff,
            version_conflict=version_check,
        )

    metadata = detect_metadata_conflict(local.meta, cloud.meta)
    if metadata.has_conflict:
        return ConflictReport(
            has_conflict=True,
            conflict_type=ConflictType.METADATA_CONFLICT,
            severity=Severity.LOW,
            reason="metadata_divergence",
            local_session=local,
            cloud_session=cloud,
            metadata_conflict=metadata,
            version_conflict=version_check,
        )

    return ConflictReport(
        has_conflict=False,
        reason=version_check.reason,
        local_session=local,
        cloud_session=cloud,
        version_conflict=version_check,
        needs_sync=version_check.needs_sync,
        sync_direction=version_check.direction,
    )


def recommend_strategies(report: ConflictReport) -> list[str]:
    """Rank the manual strategies that make sense for a report, best first."""
    if not report.has_conflict:
        return ["sync"]

    keep_local = ResolutionStrategy.KEEP_LOCAL.value
    keep_cloud = ResolutionStrategy.KEEP_CLOUD.value
    manual = ResolutionStrategy.MANUAL_MERGE.value

    if report.conflict_type == ConflictType.CONCURRENT_MODIFICATION:
        return [keep_local, keep_cloud, manual]

    if report.conflict_type == ConflictType.DATA_CONFLICT and report.data_conflict is not None:
        dc = report.data_conflict
        if dc.modified_overlap:
            return [keep_local, keep_cloud, manual]
        if dc.only_local and dc.only_cloud:
            return [manual, keep_local, keep_cloud]
        if dc.only_local:
            return [keep_local, manual]
        if dc.only_cloud:
            return [keep_cloud, manual]
        return [keep_local, keep_cloud]

    if report.conflict_type == ConflictType.METADATA_CONFLICT:
        return [keep_local, keep_cloud, ResolutionStrategy.MERGE_METADATA.value]

    return [keep_local, keep_cloud]
