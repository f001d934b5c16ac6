"""Abstract base class for replica snapshot sources."""

from abc import ABC, abstractmethod
from pathlib import Path

from .core import SessionSnapshot


class SnapshotProvider(ABC):
    """Base class for the stores that hold one replica of each session.

    The local store and the already-decrypted cloud payloads both implement
    this interface, so the conflict engine never touches storage directly.
    """

    name: str  # "local", "cloud"

    @abstractmethod
    def get_base_path(self) -> Path:
        """Return the root directory where this replica keeps snapshots."""
        ...

    @abstractmethod
    def is_available(self) -> bool:
        """Return True if this replica's data exists on this machine."""
        ...

    @abstractmethod
    def list_session_ids(self) -> list[str]:
        """Return the ids of all sessions held by this replica."""
        ...

    @abstractmethod
    def get_snapshot(self, session_id: str) -> SessionSnapshot | None:
        """Return the replica's snapshot of a session, or None if absent."""
        ...
