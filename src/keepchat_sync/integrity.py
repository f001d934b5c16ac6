"""Snapshot hashing and structural checks."""

import hashlib
import json
import logging
from datetime import datetime

from .core import MessageRole, SessionSnapshot
from .serialize import context_to_dict, message_to_dict

logger = logging.getLogger(__name__)

_VALID_ROLES = {r.value for r in MessageRole}


def compute_snapshot_hash(snapshot: SessionSnapshot) -> str:
    """SHA-256 over the session id, messages and context.

    The version stamp and the hash itself are excluded so that re-stamping a
    snapshot does not change its content hash.
    """
    payload = {
        "session_id": snapshot.session_id,
        "messages": [message_to_dict(m) for m in snapshot.messages],
        "context": context_to_dict(snapshot.context),
    }
    canonical = json.dumps(payload, sort_keys=True, ensure_ascii=False, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def verify_snapshot(snapshot: SessionSnapshot) -> bool:
    """Check ``meta.hash`` against the content. A missing hash passes."""
    if not snapshot.meta.hash:
        logger.warning("No hash provided for session %s, skipping integrity check", snapshot.session_id)
        return True
    return compute_snapshot_hash(snapshot) == snapshot.meta.hash


def verify_messages(messages) -> list[str]:
    """Return problems found in a message list (empty when clean)."""
    issues = []
    for index, msg in enumerate(messages):
        if not msg.id:
            issues.append(f"Message {index} missing id")
        if msg.role not in _VALID_ROLES:
            issues.append(f"Message {index} has invalid role: {msg.role}")
        if msg.content is None:
            issues.append(f"Message {index} missing content")
        if msg.created_at is None:
            issues.append(f"Message {index} missing created_at timestamp")

    stamps = [m.created_at for m in messages if isinstance(m.created_at, datetime)]
    if len(stamps) == len(messages):
        try:
            ordered = all(a <= b for a, b in zip(stamps, stamps[1:]))
        except TypeError:
            # mixed naive and aware timestamps
            ordered = False
        if not ordered:
            issues.append("Messages are not chronologically ordered")

    return issues
