"""Shared test fixtures for keepchat-sync."""

from datetime import datetime, timedelta, timezone

import pytest

from keepchat_sync.core import Message, SessionContext, SessionMeta, SessionSnapshot, Version
from keepchat_sync.identity import StaticIdentityProvider
from keepchat_sync.resolver import ResolutionCoordinator
from keepchat_sync.store import BackupStore, HistoryStore
from keepchat_sync.version import VersionClock

T0 = datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keep every store and log under the test's temp directory."""
    home = tmp_path / "keepchat"
    monkeypatch.setenv("KEEPCHAT_HOME", str(home))
    monkeypatch.delenv("KEEPCHAT_BACKUP_DIR", raising=False)
    monkeypatch.delenv("KEEPCHAT_SYNC_LOG", raising=False)
    monkeypatch.delenv("KEEPCHAT_SYNC_STATUS", raising=False)
    monkeypatch.delenv("KEEPCHAT_LOCAL_DIR", raising=False)
    monkeypatch.delenv("KEEPCHAT_CLOUD_DIR", raising=False)
    monkeypatch.delenv("KEEPCHAT_BACKUP_RETENTION_DAYS", raising=False)
    return home


@pytest.fixture
def make_message():
    def _make(id, content=None, role="user", minutes=0):
        return Message(
            id=id,
            role=role,
            content=content if content is not None else f"content of {id}",
            created_at=T0 + timedelta(minutes=minutes),
        )
    return _make


@pytest.fixture
def make_snapshot():
    def _make(
        messages,
        number=3,
        timestamp=None,
        session_id="sess-1",
        device="laptop",
        project_path="/home/dev/app",
        context=None,
        message_count=None,
        updated_at=None,
    ):
        version = None
        if number is not None:
            version = Version(number=number, timestamp=timestamp or T0, device_id=device)
        return SessionSnapshot(
            meta=SessionMeta(
                session_id=session_id,
                version=version,
                message_count=len(messages) if message_count is None else message_count,
                device=device,
                project_path=project_path,
                created_at=T0,
                updated_at=updated_at or T0,
            ),
            messages=tuple(messages),
            context=context or SessionContext(project_path=project_path),
        )
    return _make


@pytest.fixture
def shared_messages(make_message):
    return [
        make_message("msg-1", "Shared", minutes=0),
        make_message("msg-2", "Response", role="assistant", minutes=1),
    ]


@pytest.fixture
def local_ahead_pair(make_message, make_snapshot, shared_messages):
    """Local holds one extra message; both sides at v3 with different timestamps."""
    local = make_snapshot(
        shared_messages + [make_message("msg-3", "Local only", minutes=2)],
        number=3,
        timestamp=datetime(2024, 1, 3, tzinfo=timezone.utc),
        device="laptop",
    )
    cloud = make_snapshot(
        shared_messages,
        number=3,
        timestamp=datetime(2024, 1, 2, tzinfo=timezone.utc),
        device="laptop",
    )
    return local, cloud


@pytest.fixture
def edited_pair(make_message, make_snapshot):
    """The same message id carries different text on each side."""
    local = make_snapshot(
        [make_message("msg-1", "Original")],
        number=3,
        timestamp=datetime(2024, 1, 3, tzinfo=timezone.utc),
    )
    cloud = make_snapshot(
        [make_message("msg-1", "Modified")],
        number=3,
        timestamp=datetime(2024, 1, 2, tzinfo=timezone.utc),
    )
    return local, cloud


@pytest.fixture
def fixed_clock():
    """A clock that advances one second per call, starting at 2024-02-01."""
    state = {"now": datetime(2024, 2, 1, tzinfo=timezone.utc)}

    def _clock():
        state["now"] += timedelta(seconds=1)
        return state["now"]
    return _clock


@pytest.fixture
def version_clock(fixed_clock):
    return VersionClock(identity=StaticIdentityProvider("test-device"), clock=fixed_clock)


@pytest.fixture
def backup_store(tmp_path):
    counter = {"ms": int(datetime(2024, 2, 1, tzinfo=timezone.utc).timestamp() * 1000)}

    def _ms():
        counter["ms"] += 1
        return counter["ms"]
    return BackupStore(base_dir=tmp_path / "backups", retention_days=7, clock=_ms)


@pytest.fixture
def history_store(tmp_path):
    counter = {"ms": int(datetime(2024, 3, 1, tzinfo=timezone.utc).timestamp() * 1000)}

    def _ms():
        counter["ms"] += 1
        return counter["ms"]
    return HistoryStore(path=tmp_path / "backups" / "resolution-history.json", clock=_ms)


@pytest.fixture
def coordinator(version_clock, backup_store, history_store):
    return ResolutionCoordinator(clock=version_clock, backups=backup_store, history=history_store)
