"""Snapshot store backed by a directory of JSON files.

Each session lives in ``<base>/<session_id>.json`` in the shape produced by
``serialize.snapshot_to_dict``. Snapshots carrying a ``meta.hash`` are
verified on load.
"""

import json
import logging
from pathlib import Path

from ..core import SessionSnapshot
from ..errors import IntegrityError
from ..integrity import verify_snapshot
from ..provider import SnapshotProvider
from ..serialize import snapshot_from_dict, snapshot_to_dict
from ..store import write_json_atomic

logger = logging.getLogger(__name__)


class JsonSnapshotStore(SnapshotProvider):
    """Provider for one replica stored as JSON snapshots."""

    def __init__(self, name: str, base_path: Path):
        self.name = name
        self._base_path = Path(base_path)

    def get_base_path(self) -> Path:
        return self._base_path

    def is_available(self) -> bool:
        return self.get_base_path().is_dir()

    def list_session_ids(self) -> list[str]:
        base = self.get_base_path()
        if not base.is_dir():
            return []
        return sorted(p.stem for p in base.glob("*.json") if not p.name.startswith("."))

    def get_snapshot(self, session_id: str) -> SessionSnapshot | None:
        path = self.get_base_path() / f"{session_id}.json"
        if not path.exists():
            return None

        try:
            snapshot = snapshot_from_dict(json.loads(path.read_text(encoding="utf-8")))
        except (json.JSONDecodeError, OSError, KeyError, ValueError) as e:
            logger.error("Failed to read %s snapshot %s: %s", self.name, path, e)
            return None

        if not verify_snapshot(snapshot):
            raise IntegrityError(f"Hash mismatch for {self.name} snapshot of {session_id}")
        return snapshot

    def save_snapshot(self, snapshot: SessionSnapshot) -> Path:
        path = self.get_base_path() / f"{snapshot.session_id}.json"
        write_json_atomic(path, snapshot_to_dict(snapshot))
        return path
