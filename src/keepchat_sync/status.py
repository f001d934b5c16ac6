"""Per-session sync status, including the last version both replicas agreed on."""

import json
import logging
import threading
from pathlib import Path
from typing import Optional

from .config import get_status_path
from .core import Version
from .errors import StatusFileError
from .serialize import version_from_dict, version_to_dict
from .store import write_json_atomic

logger = logging.getLogger(__name__)


class SyncStatusStore:
    """JSON file of the form ``{"sessions": {"<id>": {...}}}``."""

    def __init__(self, path: Path | None = None):
        self.path = Path(path) if path else get_status_path()
        self._lock = threading.Lock()

    def load(self) -> dict:
        if not self.path.exists():
            return {"sessions": {}}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise StatusFileError(f"Invalid sync status JSON: {e}") from e
        data.setdefault("sessions", {})
        return data

    def save(self, status: dict) -> None:
        write_json_atomic(self.path, status)

    def get_session_status(self, session_id: str) -> Optional[dict]:
        return self.load()["sessions"].get(session_id)

    def update_session_status(self, session_id: str, patch: dict) -> dict:
        with self._lock:
            status = self.load()
            merged = {**status["sessions"].get(session_id, {}), **patch}
            status["sessions"][session_id] = merged
            self.save(status)
        return merged

    def last_synced_version(self, session_id: str) -> Optional[Version]:
        entry = self.get_session_status(session_id) or {}
        return version_from_dict(entry.get("last_synced_version"))

    def mark_synced(self, session_id: str, version: Version) -> dict:
        logger.debug("Recording v%d as sync baseline for %s", version.number, session_id)
        return self.update_session_status(
            session_id, {"last_synced_version": version_to_dict(version)}
        )
