"""Device identity used to stamp versions."""

import hashlib
import platform
import socket
from abc import ABC, abstractmethod


class IdentityProvider(ABC):
    """Supplies the identifier of the device performing a write."""

    @abstractmethod
    def device_id(self) -> str:
        ...


class HostIdentityProvider(IdentityProvider):
    """Derives a stable id from hostname, platform and architecture."""

    def __init__(self):
        self._cached: str | None = None

    def device_id(self) -> str:
        if self._cached is None:
            system = platform.system().lower() or "unknown"
            raw = f"{socket.gethostname()}-{system}-{platform.machine()}"
            digest = hashlib.sha256(raw.encode("utf-8")).hexdigest()[:12]
            self._cached = f"{system}-{digest}"
        return self._cached


class StaticIdentityProvider(IdentityProvider):
    """Always reports the same device id."""

    def __init__(self, device: str):
        self._device = device

    def device_id(self) -> str:
        return self._device
