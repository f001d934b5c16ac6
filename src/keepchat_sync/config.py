"""Path and retention settings, overridable through environment variables."""

import os
from pathlib import Path

DEFAULT_RETENTION_DAYS = 7
HISTORY_LIMIT = 100


def get_data_dir() -> Path:
    """Return the root directory for keepchat-sync state."""
    env = os.environ.get("KEEPCHAT_HOME")
    if env:
        return Path(env)
    return Path.home() / ".keepchat"


def get_backup_dir() -> Path:
    """Return the directory holding conflict backups and the resolution history."""
    env = os.environ.get("KEEPCHAT_BACKUP_DIR")
    if env:
        return Path(env)
    return get_data_dir() / "backups" / "conflicts"


def get_history_path() -> Path:
    return get_backup_dir() / "resolution-history.json"


def get_sync_log_path() -> Path:
    env = os.environ.get("KEEPCHAT_SYNC_LOG")
    if env:
        return Path(env)
    return get_data_dir() / "sync-errors.log"


def get_status_path() -> Path:
    env = os.environ.get("KEEPCHAT_SYNC_STATUS")
    if env:
        return Path(env)
    return get_data_dir() / "sync-status.json"


def get_local_store_path() -> Path:
    """Return the directory of local replica snapshots."""
    env = os.environ.get("KEEPCHAT_LOCAL_DIR")
    if env:
        return Path(env)
    return get_data_dir() / "sessions" / "local"


def get_cloud_store_path() -> Path:
    """Return the directory of decrypted cloud replica snapshots."""
    env = os.environ.get("KEEPCHAT_CLOUD_DIR")
    if env:
        return Path(env)
    return get_data_dir() / "sessions" / "cloud"


def get_retention_days() -> int:
    env = os.environ.get("KEEPCHAT_BACKUP_RETENTION_DAYS")
    if env:
        try:
            return max(int(env), 0)
        except ValueError:
            pass
    return DEFAULT_RETENTION_DAYS
