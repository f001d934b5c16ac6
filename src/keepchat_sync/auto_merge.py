"""Decide whether a conflict can be merged without losing anything.

Only data conflicts where exactly one replica gained messages, and no shared
message was edited, are merged automatically. Everything else is handed back
to the caller with a ranked list of actions.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Optional

from .core import (
    AutoMergeAssessment,
    AutoMergeStrategy,
    ConflictReport,
    ConflictType,
    SessionSnapshot,
)
from .errors import CannotAutoMergeError, UnknownStrategyError
from .merger import append_to_session
from .version import VersionClock, version_or_zero

logger = logging.getLogger(__name__)

_PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}


def assess_auto_merge(report: ConflictReport) -> AutoMergeAssessment:
    if not report.has_conflict:
        return AutoMergeAssessment(can_auto_merge=False, reason="no_conflict")

    dc = report.data_conflict
    if report.conflict_type != ConflictType.DATA_CONFLICT or dc is None:
        return AutoMergeAssessment(can_auto_merge=False, reason="no_data_conflict")

    if dc.modified_overlap_count > 0:
        return AutoMergeAssessment(
            can_auto_merge=False,
            reason="has_modified_overlaps",
            details={"modified_overlap_count": dc.modified_overlap_count},
        )

    if dc.only_local_count > 0 and dc.only_cloud_count > 0:
        return AutoMergeAssessment(
            can_auto_merge=False,
            reason="both_sides_have_new_messages",
            details={"only_local_count": dc.only_local_count, "only_cloud_count": dc.only_cloud_count},
        )

    if dc.only_local_count > 0:
        return AutoMergeAssessment(
            can_auto_merge=True,
            strategy=AutoMergeStrategy.APPEND_LOCAL,
            reason="only_local_has_new_messages",
            details={"new_message_count": dc.only_local_count},
        )

    if dc.only_cloud_count > 0:
        return AutoMergeAssessment(
            can_auto_merge=True,
            strategy=AutoMergeStrategy.APPEND_CLOUD,
            reason="only_cloud_has_new_messages",
            details={"new_message_count": dc.only_cloud_count},
        )

    return AutoMergeAssessment(can_auto_merge=False, reason="unknown_conflict_pattern")


def source_and_target(
    report: ConflictReport, strategy: AutoMergeStrategy
) -> tuple[SessionSnapshot, SessionSnapshot]:
    """Return ``(source, target)``: the side contributing messages and the side receiving them."""
    if strategy == AutoMergeStrategy.APPEND_LOCAL:
        return report.local_session, report.cloud_session
    if strategy == AutoMergeStrategy.APPEND_CLOUD:
        return report.cloud_session, report.local_session
    raise UnknownStrategyError(f"Unknown merge strategy: {strategy}", code="unknown_merge_strategy")


def perform_auto_merge(
    report: ConflictReport,
    clock: VersionClock,
    now: Optional[datetime] = None,
) -> tuple[AutoMergeAssessment, SessionSnapshot]:
    """Merge an eligible report and stamp the result with a merged version.

    Raises ``CannotAutoMergeError`` when the report is not eligible.
    """
    assessment = assess_auto_merge(report)
    if not assessment.can_auto_merge:
        raise CannotAutoMergeError(assessment.reason)

    source, target = source_and_target(report, assessment.strategy)
    merged = append_to_session(source, target, now=now)

    label = f"auto_merge_{assessment.strategy.value}"
    version = clock.merge_version(
        version_or_zero(report.local_session.meta), version_or_zero(report.cloud_session.meta), label
    )
    meta = replace(
        merged.meta,
        version=version,
        updated_at=version.timestamp,
        conflict_resolved=True,
        resolution_strategy=label,
        auto_merged=True,
    )
    logger.info(
        "Auto-merged session %s with %s (%d new messages)",
        report.session_id, label, assessment.details.get("new_message_count", 0),
    )
    return assessment, replace(merged, meta=meta)


def recommended_actions(assessment: AutoMergeAssessment, report: ConflictReport) -> list[dict]:
    """Ranked follow-ups for a conflict that could not be merged automatically."""
    actions = []

    if assessment.reason == "has_modified_overlaps":
        actions.append({
            "type": "manual_merge",
            "description": "Review and manually resolve modified messages",
            "priority": "high",
        })

    if assessment.reason == "both_sides_have_new_messages":
        actions.append({
            "type": "manual_merge",
            "description": "Manually merge messages from both sides",
            "priority": "high",
        })
        actions.append({
            "type": "keep_local",
            "description": "Keep local version (discard cloud changes)",
            "priority": "medium",
        })
        actions.append({
            "type": "keep_cloud",
            "description": "Keep cloud version (discard local changes)",
            "priority": "medium",
        })

    if report.conflict_type == ConflictType.METADATA_CONFLICT:
        actions.append({
            "type": "merge_metadata",
            "description": "Resolve metadata conflicts",
            "priority": "low",
        })

    return sorted(actions, key=lambda a: _PRIORITY_ORDER[a["priority"]])


def auto_merge_preview(report: ConflictReport, strategy: AutoMergeStrategy | str) -> dict:
    try:
        strategy = AutoMergeStrategy(strategy)
    except ValueError:
        raise UnknownStrategyError(
            f"Unknown merge strategy: {strategy}", code="unknown_merge_strategy"
        ) from None

    source, target = source_and_target(report, strategy)
    preview = append_to_session(source, target)
    local_count = len(report.local_session.messages)
    cloud_count = len(report.cloud_session.messages)
    return {
        "strategy": strategy.value,
        "session": preview,
        "summary": {
            "local_message_count": local_count,
            "cloud_message_count": cloud_count,
            "merged_message_count": len(preview.messages),
            "added_count": len(preview.messages) - max(local_count, cloud_count),
        },
    }


def validate_merge_result(session: Optional[SessionSnapshot]) -> tuple[list[str], list[str]]:
    """Return ``(errors, warnings)`` for an auto-merged snapshot."""
    errors: list[str] = []
    warnings: list[str] = []

    if session is None:
        errors.append("Merged session is missing")
        return errors, warnings

    if session.meta.version is None:
        errors.append("Session version is missing")
    if not session.meta.auto_merged:
        warnings.append("Session may not have been auto-merged")
    if session.messages is None:
        errors.append("Session messages are missing")
    elif not session.messages:
        warnings.append("Session has no messages")

    return errors, warnings
