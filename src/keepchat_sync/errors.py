"""Exceptions raised by keepchat-sync.

Every error carries a stable ``code`` string that the HTTP layer and the
resolution history report verbatim.
"""


class SyncError(Exception):
    code = "sync_error"

    def __init__(self, message: str = "", code: str | None = None):
        if code:
            self.code = code
        super().__init__(message or self.code)


class NoConflictError(SyncError):
    code = "no_conflict_to_resolve"


class CannotAutoMergeError(SyncError):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Cannot auto-merge: {reason}", code=f"cannot_auto_merge:{reason}")


class UnknownStrategyError(SyncError):
    code = "unknown_resolution_strategy"


class BackupWriteError(SyncError):
    code = "backup_write_failed"


class HistoryWriteError(SyncError):
    code = "history_write_failed"


class BackupNotFoundError(SyncError):
    code = "backup_not_found"


class ValidationError(SyncError):
    def __init__(self, field: str, message: str = ""):
        self.field = field
        super().__init__(message or f"Invalid {field}", code=f"validation_failed:{field}")


class IntegrityError(SyncError):
    code = "integrity_check_failed"


class StatusFileError(SyncError):
    code = "invalid_sync_status"
