"""Merge strategies for combining two session snapshots.

Every strategy is a pure function of ``(source, target)`` that returns a new
snapshot; neither input is modified.

- ``replace``: the result is the source, stamped with where it came from
- ``append``: target messages followed by source messages whose id is new
- ``merge``: union of both sides deduplicated by ``role|content|created_at``
  and ordered by creation time, with contexts merged field by field
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from .core import FileRef, MergeStrategy, Message, SessionContext, SessionSnapshot
from .errors import UnknownStrategyError

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
NOTES_SEPARATOR = "\n\n---\n\n"


class SessionState(str, Enum):
    EMPTY = "empty"
    ACTIVE = "active"


@dataclass(frozen=True)
class StrategyRecommendation:
    strategy: MergeStrategy
    reason: str
    can_replace: bool = True
    can_append: bool = False
    can_merge: bool = False
    warning: Optional[str] = None


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def _created_key(msg: Message) -> datetime:
    ts = msg.created_at
    if ts is None:
        return _EPOCH
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def detect_session_state(messages) -> SessionState:
    return SessionState.ACTIVE if messages else SessionState.EMPTY


def detect_message_overlap(source_messages, target_messages) -> bool:
    source_ids = {m.id for m in source_messages}
    return any(m.id in source_ids for m in target_messages)


def compare_sessions(source: SessionSnapshot, target: SessionSnapshot) -> dict:
    return {
        "source_count": len(source.messages),
        "target_count": len(target.messages),
        "source_last_updated": source.meta.updated_at,
        "target_last_updated": target.meta.updated_at,
        "has_overlap": detect_message_overlap(source.messages, target.messages),
    }


def recommend_strategy(source: SessionSnapshot, target: SessionSnapshot) -> StrategyRecommendation:
    """Pick a merge strategy for two sessions that differ without a flagged conflict."""
    if detect_session_state(target.messages) == SessionState.EMPTY:
        return StrategyRecommendation(
            strategy=MergeStrategy.REPLACE,
            reason="target session is empty",
            can_replace=True,
        )

    if detect_message_overlap(source.messages, target.messages):
        return StrategyRecommendation(
            strategy=MergeStrategy.MERGE,
            reason="sessions have overlapping messages",
            can_merge=True,
            warning="Some messages may be duplicated if not merged carefully",
        )

    source_time = source.meta.updated_at or _EPOCH
    target_time = target.meta.updated_at or _EPOCH
    if source_time > target_time:
        return StrategyRecommendation(
            strategy=MergeStrategy.APPEND,
            reason="source session is newer and has no overlap",
            can_append=True,
            can_merge=True,
        )

    return StrategyRecommendation(
        strategy=MergeStrategy.REPLACE,
        reason="source session is older",
    )


def replace_session(source: SessionSnapshot, now: Optional[datetime] = None) -> SessionSnapshot:
    meta = replace(
        source.meta,
        restored_from=source.session_id,
        updated_at=_now(now),
        merge_strategy=MergeStrategy.REPLACE.value,
    )
    return replace(source, meta=meta)


def override_context(target: SessionContext, source: SessionContext) -> SessionContext:
    """Shallow override: every field the source sets replaces the target's."""
    return SessionContext(
        project_path=source.project_path or target.project_path,
        files=source.files or target.files,
        active_files=source.active_files or target.active_files,
        notes=source.notes if source.notes is not None else target.notes,
    )


def append_to_session(
    source: SessionSnapshot, target: SessionSnapshot, now: Optional[datetime] = None
) -> SessionSnapshot:
    target_ids = {m.id for m in target.messages}
    new_messages = tuple(m for m in source.messages if m.id not in target_ids)
    messages = target.messages + new_messages

    meta = replace(
        target.meta,
        message_count=len(messages),
        updated_at=_now(now),
        restored_from=source.session_id,
        merge_strategy=MergeStrategy.APPEND.value,
        appended_count=len(new_messages),
    )
    return SessionSnapshot(
        meta=meta,
        messages=messages,
        context=override_context(target.context, source.context),
    )


def merge_contexts(
    source: SessionContext, target: SessionContext, policy: str = "latest"
) -> SessionContext:
    """Merge two contexts.

    ``source`` and ``target`` policies let one side win every field it sets.
    ``latest`` keeps the more specific project path, dedupes files by path,
    unions active files and concatenates notes from both sides.
    """
    if policy == "source":
        return override_context(target, source)
    if policy == "target":
        return override_context(source, target)

    project_path = target.project_path
    if source.project_path and (not project_path or len(source.project_path) > len(project_path)):
        project_path = source.project_path

    files: dict[str, FileRef] = {}
    for ref in target.files + source.files:
        files[ref.path] = ref

    active = list(dict.fromkeys(target.active_files + source.active_files))

    notes = [n for n in (target.notes, source.notes) if n]

    return SessionContext(
        project_path=project_path,
        files=tuple(files.values()),
        active_files=tuple(active),
        notes=NOTES_SEPARATOR.join(notes) or None,
    )


def _dedupe_key(msg: Message) -> str:
    created = msg.created_at.isoformat() if msg.created_at else ""
    return f"{msg.role}|{msg.content}|{created}"


def merge_sessions(
    source: SessionSnapshot,
    target: SessionSnapshot,
    context_policy: str = "latest",
    now: Optional[datetime] = None,
) -> SessionSnapshot:
    combined = sorted(source.messages + target.messages, key=_created_key)

    unique: dict[str, Message] = {}
    for msg in combined:
        key = _dedupe_key(msg)
        kept = unique.get(key)
        if kept is None or kept.id < msg.id:
            unique[key] = msg

    merged = tuple(unique.values())
    removed = len(combined) - len(merged)
    if removed:
        logger.debug("Dropped %d duplicate messages while merging %s", removed, target.session_id)

    meta = replace(
        target.meta,
        message_count=len(merged),
        updated_at=_now(now),
        restored_from=source.session_id,
        merge_strategy=MergeStrategy.MERGE.value,
        duplicates_removed=removed,
    )
    return SessionSnapshot(
        meta=meta,
        messages=merged,
        context=merge_contexts(source.context, target.context, context_policy),
    )


def apply_merge_strategy(
    source: SessionSnapshot,
    target: SessionSnapshot,
    strategy: MergeStrategy | str,
    context_policy: str = "latest",
    now: Optional[datetime] = None,
) -> SessionSnapshot:
    try:
        strategy = MergeStrategy(strategy)
    except ValueError:
        raise UnknownStrategyError(
            f"Unknown merge strategy: {strategy}", code="unknown_merge_strategy"
        ) from None

    if strategy == MergeStrategy.REPLACE:
        return replace_session(source, now=now)
    if strategy == MergeStrategy.APPEND:
        return append_to_session(source, target, now=now)
    if strategy == MergeStrategy.MERGE:
        return merge_sessions(source, target, context_policy=context_policy, now=now)
    raise UnknownStrategyError(f"Unhandled merge strategy: {strategy}", code="unknown_merge_strategy")


def merge_preview(source: SessionSnapshot, target: SessionSnapshot, strategy: MergeStrategy | str) -> dict:
    """Describe what applying ``strategy`` would do, without committing to it."""
    recommendation = recommend_strategy(source, target)
    result = apply_merge_strategy(source, target, strategy)
    strategy = MergeStrategy(strategy)
    return {
        "strategy": strategy.value,
        "recommended": recommendation.strategy.value,
        "match": strategy == recommendation.strategy,
        "source": {
            "session_id": source.session_id,
            "message_count": len(source.messages),
            "last_updated": source.meta.updated_at,
        },
        "target": {"message_count": len(target.messages)},
        "comparison": compare_sessions(source, target),
        "result": {
            "message_count": len(result.messages),
            "change": len(result.messages) - len(target.messages),
            "duplicates_removed": result.meta.duplicates_removed or 0,
            "appended_count": result.meta.appended_count or 0,
        },
        "session": result,
    }
