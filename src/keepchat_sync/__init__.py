"""Conflict detection and resolution for two-replica chat session sync."""

from .auto_merge import assess_auto_merge
from .classifier import classify_conflict, recommend_strategies
from .resolver import ResolutionCoordinator, ReconcileOutcome
from .store import BackupStore, HistoryStore
from .version import VersionClock

__all__ = [
    "BackupStore",
    "HistoryStore",
    "ReconcileOutcome",
    "ResolutionCoordinator",
    "VersionClock",
    "assess_auto_merge",
    "classify_conflict",
    "recommend_strategies",
]
