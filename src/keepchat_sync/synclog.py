"""Append-only JSON-lines log of sync failures, kept apart from regular logging."""

import json
import logging
import traceback
from datetime import datetime, timezone

from .config import get_sync_log_path

logger = logging.getLogger(__name__)


def log_sync_error(session_id: str, phase: str, error: BaseException | str) -> dict:
    """Record a failure for later inspection and return the written entry."""
    entry = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "session_id": session_id,
        "phase": phase,
        "message": str(error),
        "traceback": (
            "".join(traceback.format_exception(type(error), error, error.__traceback__))
            if isinstance(error, BaseException) else None
        ),
    }
    path = get_sync_log_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(entry, ensure_ascii=False) + "\n")
    except OSError as e:
        logger.error("Could not write sync error log %s: %s", path, e)
    logger.error("Sync failure in %s for %s: %s", phase, session_id, entry["message"])
    return entry
