"""Durable backups of superseded snapshots and the resolution audit trail.

Backups are one JSON file each under the backup directory. The history is a
single JSON array next to them, rewritten atomically and capped to the most
recent entries. Both files are replaced with ``os.replace`` so concurrent
readers always see a complete document.
"""

import hashlib
import json
import logging
import os
import re
import tempfile
import threading
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Optional

from .config import HISTORY_LIMIT, get_backup_dir, get_history_path, get_retention_days
from .core import BackupEntry, ConflictReport, HistoryEntry, ResolutionResult, SessionSnapshot
from .errors import BackupNotFoundError, BackupWriteError, HistoryWriteError
from .serialize import backup_from_dict, backup_to_dict, history_from_dict, history_to_dict

logger = logging.getLogger(__name__)

HISTORY_FILE_NAME = "resolution-history.json"


def write_json_atomic(path: Path, data) -> None:
    """Write JSON to ``path`` through a temp file in the same directory."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise


def generate_backup_id(session_id: str, timestamp: int, backup_type: str) -> str:
    """Stable id: the same logical backup always maps to the same id."""
    digest = hashlib.md5(f"{session_id}-{timestamp}-{backup_type}".encode("utf-8")).hexdigest()
    return f"backup-{digest[:12]}"


def backup_file_name(session_id: str, backup_type: str, timestamp: int) -> str:
    safe_id = re.sub(r"[^A-Za-z0-9._-]", "_", session_id)
    moment = datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc)
    stamp = moment.strftime("%Y-%m-%d-%H-%M-%S") + f"-{timestamp % 1000:03d}"
    return f"{safe_id}-{backup_type}-{stamp}.json"


def _now_ms() -> int:
    return int(time.time() * 1000)


class BackupStore:
    """Pre-resolution snapshots with a retention window."""

    def __init__(
        self,
        base_dir: Path | None = None,
        retention_days: int | None = None,
        clock: Callable[[], int] | None = None,
    ):
        self.base_dir = Path(base_dir) if base_dir else get_backup_dir()
        self.retention_days = get_retention_days() if retention_days is None else retention_days
        self._clock = clock or _now_ms
        self._last_ms = 0
        self._lock = threading.Lock()

    def _claim(self, session_id: str, backup_type: str) -> tuple[int, Path]:
        """Reserve a timestamp no earlier backup in this store has used."""
        with self._lock:
            timestamp = max(self._clock(), self._last_ms + 1)
            path = self.base_dir / backup_file_name(session_id, backup_type, timestamp)
            while path.exists():
                timestamp += 1
                path = self.base_dir / backup_file_name(session_id, backup_type, timestamp)
            self._last_ms = timestamp
        return timestamp, path

    def create(
        self,
        session_id: str,
        session: SessionSnapshot,
        backup_type: str,
        reason: str = "conflict_resolution",
    ) -> BackupEntry:
        """Persist ``session`` and return its entry. Raises ``BackupWriteError``."""
        timestamp, path = self._claim(session_id, backup_type)
        backed_up_at = datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc)
        entry = BackupEntry(
            backup_id=generate_backup_id(session_id, timestamp, backup_type),
            session_id=session_id,
            backup_type=backup_type,
            timestamp=timestamp,
            backed_up_at=backed_up_at,
            expires_at=backed_up_at + timedelta(days=self.retention_days),
            session=session,
            reason=reason,
        )

        try:
            write_json_atomic(path, backup_to_dict(entry))
        except OSError as e:
            raise BackupWriteError(f"Failed to write backup {path}: {e}") from e

        logger.info("Backed up %s snapshot of %s as %s", backup_type, session_id, entry.backup_id)
        return entry

    def _iter_files(self):
        if not self.base_dir.is_dir():
            return
        for path in self.base_dir.glob("*.json"):
            if path.name == HISTORY_FILE_NAME:
                continue
            try:
                entry = backup_from_dict(json.loads(path.read_text(encoding="utf-8")))
            except (json.JSONDecodeError, OSError, KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping unreadable backup %s: %s", path.name, e)
                continue
            yield path, entry

    def is_expired(self, entry: BackupEntry) -> bool:
        now = datetime.fromtimestamp(self._clock() / 1000, tz=timezone.utc)
        return entry.expires_at < now

    def list_backups(self, session_id: str | None = None, include_expired: bool = False) -> list[BackupEntry]:
        """Return backups newest first, optionally for one session."""
        entries = [
            entry for _, entry in self._iter_files()
            if (session_id is None or entry.session_id == session_id)
            and (include_expired or not self.is_expired(entry))
        ]
        entries.sort(key=lambda e: e.timestamp, reverse=True)
        return entries

    def _locate(self, backup_id: str) -> tuple[Path, BackupEntry]:
        for path, entry in self._iter_files():
            if entry.backup_id == backup_id:
                return path, entry
        raise BackupNotFoundError(f"Backup not found: {backup_id}")

    def get(self, backup_id: str) -> BackupEntry:
        return self._locate(backup_id)[1]

    def restore(self, backup_id: str) -> SessionSnapshot:
        entry = self.get(backup_id)
        logger.info("Restoring %s snapshot of %s from %s", entry.backup_type, entry.session_id, backup_id)
        return entry.session

    def delete(self, backup_id: str) -> bool:
        try:
            path, _ = self._locate(backup_id)
        except BackupNotFoundError:
            return False
        try:
            path.unlink()
        except OSError as e:
            logger.error("Failed to delete backup %s: %s", backup_id, e)
            return False
        return True

    def purge_expired(self) -> list[str]:
        """Delete expired backups and return their ids."""
        deleted = []
        for path, entry in self._iter_files():
            if not self.is_expired(entry):
                continue
            try:
                path.unlink()
            except OSError as e:
                logger.error("Failed to delete expired backup %s: %s", entry.backup_id, e)
                continue
            deleted.append(entry.backup_id)
        if deleted:
            logger.info("Purged %d expired backups", len(deleted))
        return deleted


class HistoryStore:
    """Append-only resolution log capped to the most recent ``limit`` entries."""

    def __init__(
        self,
        path: Path | None = None,
        limit: int = HISTORY_LIMIT,
        clock: Callable[[], int] | None = None,
    ):
        self.path = Path(path) if path else get_history_path()
        self.limit = limit
        self._clock = clock or _now_ms
        self._lock = threading.Lock()

    def _read(self) -> list[HistoryEntry]:
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            return [history_from_dict(item) for item in raw]
        except (json.JSONDecodeError, OSError, KeyError, TypeError, ValueError) as e:
            logger.warning("Resolution history %s is unreadable, starting fresh: %s", self.path, e)
            return []

    def append(self, entry: HistoryEntry) -> HistoryEntry:
        with self._lock:
            history = self._read()
            history.append(entry)
            history = history[-self.limit:]
            try:
                write_json_atomic(self.path, [history_to_dict(h) for h in history])
            except OSError as e:
                raise HistoryWriteError(f"Failed to write resolution history: {e}") from e
        return entry

    def record_conflict_resolution(
        self, report: ConflictReport, result: ResolutionResult, session_id: Optional[str] = None
    ) -> HistoryEntry:
        timestamp = self._clock()
        entry = HistoryEntry(
            session_id=session_id or report.session_id,
            timestamp=timestamp,
            resolved_at=datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc),
            conflict_type=report.conflict_type.value,
            conflict_severity=report.severity.value,
            resolution_strategy=result.strategy,
            success=result.success,
            auto_merged=result.auto_merged,
            conflict_reason=report.reason,
            backup_created=bool(result.backup_id),
            backup_id=result.backup_id,
        )
        return self.append(entry)

    def get(self, session_id: str | None = None, limit: int | None = None) -> list[HistoryEntry]:
        """Return history newest first, optionally filtered and limited."""
        history = self._read()
        if session_id:
            history = [h for h in history if h.session_id == session_id]
        if limit:
            history = history[-limit:]
        history.sort(key=lambda h: h.timestamp, reverse=True)
        return history
