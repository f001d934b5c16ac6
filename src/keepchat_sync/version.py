"""Version stamps attached to each replica.

A version is ordered by ``(number, timestamp)``. Numbers grow by one on every
write to a replica lineage; a merge takes ``max(local, cloud) + 1`` so that the
result is strictly newer than both parents.
"""

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Optional, Union

from .core import SessionMeta, SyncDirection, Version, VersionCheck, VersionResolution
from .identity import HostIdentityProvider, IdentityProvider

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

Baseline = Union[Version, int, None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _ts(value: Optional[datetime]) -> datetime:
    """Comparable timestamp; missing or naive values are treated as UTC."""
    if value is None:
        return _EPOCH
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def baseline_number(last_synced: Baseline) -> Optional[int]:
    """Return the version number of a baseline given as a Version or a bare int."""
    if last_synced is None:
        return None
    if isinstance(last_synced, Version):
        return last_synced.number
    return int(last_synced)


def version_or_zero(meta: SessionMeta) -> Version:
    """A snapshot without a version stamp counts as v0 at its creation time."""
    if meta.version is not None:
        return meta.version
    return Version(number=0, timestamp=meta.created_at)


def compare_versions(a: Version, b: Version) -> int:
    """Return 1 if ``a`` is newer, -1 if ``b`` is newer, 0 if equal."""
    if a.number != b.number:
        return 1 if a.number > b.number else -1
    ta, tb = _ts(a.timestamp), _ts(b.timestamp)
    if ta > tb:
        return 1
    if ta < tb:
        return -1
    return 0


def detect_version_conflict(local: Optional[Version], cloud: Optional[Version]) -> VersionCheck:
    """Plain catch-up check between two stamps. Never reports a conflict."""
    if local is None or cloud is None:
        return VersionCheck(
            has_conflict=False, reason="missing_version", local_version=local, cloud_version=cloud
        )

    comparison = compare_versions(local, cloud)
    if comparison == 0:
        return VersionCheck(
            has_conflict=False, reason="same_version",
            local_version=local, cloud_version=cloud, synced=True,
        )
    if comparison < 0:
        return VersionCheck(
            has_conflict=False, reason="cloud_newer",
            local_version=local, cloud_version=cloud,
            needs_sync=True, direction=SyncDirection.PULL,
        )
    return VersionCheck(
        has_conflict=False, reason="local_newer",
        local_version=local, cloud_version=cloud,
        needs_sync=True, direction=SyncDirection.PUSH,
    )


def detect_concurrent_modification(
    local: Version, cloud: Version, last_synced: Baseline = None
) -> VersionCheck:
    """Report a conflict only when both replicas moved past the last common version.

    Without a baseline the exchange is treated as a first sync.
    """
    base = baseline_number(last_synced)
    if base is None:
        return VersionCheck(
            has_conflict=False, reason="first_sync",
            local_version=local, cloud_version=cloud, needs_sync=True,
        )

    baseline = last_synced if isinstance(last_synced, Version) else Version(number=base)
    comparison = compare_versions(local, cloud)
    if local.number > base and cloud.number > base and comparison != 0:
        return VersionCheck(
            has_conflict=True, reason="concurrent_modification",
            local_version=local, cloud_version=cloud, last_synced_version=baseline,
        )

    return replace(detect_version_conflict(local, cloud), last_synced_version=baseline)


def validate_version(version: Optional[Version]) -> list[str]:
    """Return a list of problems with a version stamp (empty when valid)."""
    if version is None:
        return ["version is required"]
    errors = []
    if not isinstance(version.number, int) or version.number < 1:
        errors.append("version must be a positive number")
    if version.timestamp is None:
        errors.append("timestamp is required")
    if not version.device_id:
        errors.append("device identifier is required")
    return errors


def format_version(version: Optional[Version]) -> str:
    if version is None:
        return "N/A"
    if version.timestamp is None:
        return f"v{version.number}"
    return f"v{version.number} ({version.timestamp.strftime('%Y-%m-%d %H:%M')})"


def format_duration(ms: float) -> str:
    """Compact human duration: ``2d 3h``, ``4h 10m``, ``5m 2s``, ``7s``."""
    seconds = int(abs(ms) // 1000)
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24
    if days > 0:
        return f"{days}d {hours % 24}h"
    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"


def version_difference(a: Version, b: Version) -> dict:
    comparison = compare_versions(a, b)
    time_diff_ms = (_ts(a.timestamp) - _ts(b.timestamp)).total_seconds() * 1000
    return {
        "comparison": comparison,
        "version_diff": a.number - b.number,
        "time_diff_ms": time_diff_ms,
        "time_diff_formatted": format_duration(time_diff_ms),
        "versions_behind": b.number - a.number if comparison < 0 else 0,
        "versions_ahead": a.number - b.number if comparison > 0 else 0,
    }


class VersionClock:
    """Creates and advances version stamps for the current device.

    Identity and time are injected so stamping is deterministic under test.
    """

    def __init__(
        self,
        identity: IdentityProvider | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.identity = identity or HostIdentityProvider()
        self.clock = clock or _utcnow

    def create_initial(self, author: str = "system") -> Version:
        return Version(
            number=1,
            timestamp=self.clock(),
            device_id=self.identity.device_id(),
            author=author,
        )

    def increment(
        self, current: Optional[Version], author: str = "system", floor: int | None = None
    ) -> Version:
        """Return the next version after ``current``.

        ``floor`` raises the base number so the result is also newer than
        another replica's version.
        """
        if current is None:
            return self.create_initial(author)
        base = current.number if floor is None else max(current.number, floor)
        return Version(
            number=base + 1,
            timestamp=self.clock(),
            device_id=self.identity.device_id(),
            author=author,
            previous_number=current.number,
            previous_timestamp=current.timestamp,
        )

    def sync_version(self, cloud: Version) -> Version:
        """Adopt the cloud stamp after a pull."""
        return replace(cloud, synced_at=self.clock())

    def merge_version(self, local: Version, cloud: Version, strategy: str) -> Version:
        merged = Version(
            number=max(local.number, cloud.number) + 1,
            timestamp=self.clock(),
            device_id=self.identity.device_id(),
            author="merged",
            resolution=VersionResolution(
                strategy=strategy, local_number=local.number, cloud_number=cloud.number
            ),
        )
        logger.debug(
            "Merged versions v%d and v%d into v%d (%s)",
            local.number, cloud.number, merged.number, strategy,
        )
        return merged

    # Comparison helpers are stateless; exposed here so callers only need the clock.
    compare = staticmethod(compare_versions)
    detect_conflict = staticmethod(detect_concurrent_modification)
