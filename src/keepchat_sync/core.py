"""Core data models for keepchat-sync."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ConflictType(str, Enum):
    NONE = "none"
    VERSION_MISMATCH = "version_mismatch"
    CONCURRENT_MODIFICATION = "concurrent_modification"
    DATA_CONFLICT = "data_conflict"
    METADATA_CONFLICT = "metadata_conflict"


class Severity(str, Enum):
    """How much human attention a conflict needs."""

    LOW = "low"  # can be resolved automatically
    MEDIUM = "medium"  # needs confirmation
    HIGH = "high"  # needs manual resolution


class SyncDirection(str, Enum):
    PUSH = "push"
    PULL = "pull"


class MergeStrategy(str, Enum):
    REPLACE = "replace"
    APPEND = "append"
    MERGE = "merge"


class ResolutionStrategy(str, Enum):
    KEEP_LOCAL = "keep_local"
    KEEP_CLOUD = "keep_cloud"
    MANUAL_MERGE = "manual_merge"
    MERGE_METADATA = "merge_metadata"
    AUTO_MERGE = "auto_merge"


class AutoMergeStrategy(str, Enum):
    APPEND_LOCAL = "append_local"  # fold local-only messages into the cloud snapshot
    APPEND_CLOUD = "append_cloud"  # fold cloud-only messages into the local snapshot


@dataclass(frozen=True)
class Message:
    """A single chat message. Identity is ``id``."""

    id: str
    role: str  # "user" | "assistant" | "system"
    content: str
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class FileRef:
    path: str
    content_hash: Optional[str] = None
    size_bytes: Optional[int] = None


@dataclass(frozen=True)
class SessionContext:
    """Working context attached to a session. Merged field by field."""

    project_path: Optional[str] = None
    files: tuple[FileRef, ...] = ()
    active_files: tuple[str, ...] = ()
    notes: Optional[str] = None


@dataclass(frozen=True)
class VersionResolution:
    """Audit record of the two parents a merged version came from."""

    strategy: str
    local_number: int
    cloud_number: int


@dataclass(frozen=True)
class Version:
    """A version stamp. Ordered by ``(number, timestamp)``."""

    number: int
    timestamp: Optional[datetime] = None
    device_id: str = ""
    author: str = "system"
    previous_number: Optional[int] = None
    previous_timestamp: Optional[datetime] = None
    synced_at: Optional[datetime] = None
    resolution: Optional[VersionResolution] = None


@dataclass(frozen=True)
class SessionMeta:
    session_id: str
    version: Optional[Version] = None
    message_count: int = 0
    device: str = ""
    project_path: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    hash: Optional[str] = None
    # Stamps written by the resolution engine
    conflict_resolved: bool = False
    resolution_strategy: Optional[str] = None
    auto_merged: bool = False
    restored_from: Optional[str] = None
    merge_strategy: Optional[str] = None
    appended_count: Optional[int] = None
    duplicates_removed: Optional[int] = None


@dataclass(frozen=True)
class SessionSnapshot:
    """An immutable view of one replica. Resolution always builds a new one."""

    meta: SessionMeta
    messages: tuple[Message, ...] = ()
    context: SessionContext = field(default_factory=SessionContext)

    @property
    def session_id(self) -> str:
        return self.meta.session_id


@dataclass(frozen=True)
class ContentDivergence:
    """A message present on both sides whose text differs."""

    id: str
    local_content: str
    cloud_content: str


@dataclass(frozen=True)
class DiffResult:
    only_local: tuple[Message, ...] = ()
    only_cloud: tuple[Message, ...] = ()
    modified_overlap: tuple[ContentDivergence, ...] = ()

    @property
    def has_differences(self) -> bool:
        return bool(self.only_local or self.only_cloud or self.modified_overlap)

    @property
    def only_local_count(self) -> int:
        return len(self.only_local)

    @property
    def only_cloud_count(self) -> int:
        return len(self.only_cloud)

    @property
    def modified_overlap_count(self) -> int:
        return len(self.modified_overlap)


@dataclass(frozen=True)
class FieldConflict:
    field: str
    local: Any
    cloud: Any


@dataclass(frozen=True)
class MetadataConflict:
    conflicts: tuple[FieldConflict, ...] = ()

    @property
    def has_conflict(self) -> bool:
        return bool(self.conflicts)


@dataclass(frozen=True)
class VersionCheck:
    """Outcome of comparing two version stamps against a baseline."""

    has_conflict: bool
    reason: str
    local_version: Optional[Version] = None
    cloud_version: Optional[Version] = None
    last_synced_version: Optional[Version] = None
    needs_sync: bool = False
    synced: bool = False
    direction: Optional[SyncDirection] = None


@dataclass(frozen=True)
class ConflictReport:
    has_conflict: bool
    conflict_type: ConflictType = ConflictType.NONE
    severity: Severity = Severity.LOW
    reason: str = ""
    local_session: Optional[SessionSnapshot] = None
    cloud_session: Optional[SessionSnapshot] = None
    data_conflict: Optional[DiffResult] = None
    metadata_conflict: Optional[MetadataConflict] = None
    version_conflict: Optional[VersionCheck] = None
    needs_sync: bool = False
    sync_direction: Optional[SyncDirection] = None

    @property
    def session_id(self) -> str:
        for snapshot in (self.local_session, self.cloud_session):
            if snapshot is not None:
                return snapshot.session_id
        return ""


@dataclass(frozen=True)
class AutoMergeAssessment:
    can_auto_merge: bool
    reason: str
    strategy: Optional[AutoMergeStrategy] = None
    details: dict = field(default_factory=dict)


@dataclass
class ResolutionResult:
    success: bool
    strategy: str
    resolved_session: Optional[SessionSnapshot] = None
    overwritten_session: Optional[SessionSnapshot] = None
    backup_id: Optional[str] = None
    backup_ids: list[str] = field(default_factory=list)
    auto_merged: bool = False
    requires_user_input: bool = False
    merge_preview: Optional[dict] = None
    error: Optional[str] = None
    message: str = ""
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class BackupEntry:
    backup_id: str
    session_id: str
    backup_type: str  # "local" | "cloud"
    timestamp: int  # epoch milliseconds
    backed_up_at: datetime
    expires_at: datetime
    session: SessionSnapshot
    reason: str = "conflict_resolution"


@dataclass(frozen=True)
class HistoryEntry:
    session_id: str
    timestamp: int  # epoch milliseconds
    resolved_at: datetime
    conflict_type: str
    conflict_severity: str
    resolution_strategy: str
    success: bool
    auto_merged: bool = False
    conflict_reason: str = ""
    backup_created: bool = False
    backup_id: Optional[str] = None
