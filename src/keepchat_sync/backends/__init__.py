"""Build the local and cloud replica stores from configuration."""

from ..config import get_cloud_store_path, get_local_store_path
from .json_store import JsonSnapshotStore


def get_replica_providers() -> dict[str, JsonSnapshotStore]:
    """Return the local and cloud snapshot stores keyed by replica name."""
    return {
        "local": JsonSnapshotStore("local", get_local_store_path()),
        "cloud": JsonSnapshotStore("cloud", get_cloud_store_path()),
    }
