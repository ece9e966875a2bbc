from __future__ import annotations

from dataclasses import dataclass
from dataclasses import fields
from typing import Any

from django.conf import settings as dj_settings


@dataclass(frozen=True)
class SyncConfig:
    base_url: str = "http://localhost:8000"
    socketio_path: str = "socket.io"
    http_timeout: float = 10.0
    # Coalescing window for booking_updated bursts; 0 applies every event at once.
    debounce_window: float = 0.3
    booking_max_age: float = 5.0
    # None keeps entity collections until invalidated.
    entity_max_age: float | None = None
    auto_connect: bool = True
    reconnection_attempts: int = 0
    reconnection_delay: float = 1.0
    reconnection_delay_max: float = 5.0

    @classmethod
    def from_settings(cls, **overrides: Any) -> SyncConfig:
        """Build the client config from `settings.COURTBOOK_SYNC`.

        Environment variables are read once, by the settings module.
        Explicit overrides win over settings; missing keys keep defaults.
        """

        values: dict[str, Any] = {}
        if dj_settings.configured:
            values.update(getattr(dj_settings, "COURTBOOK_SYNC", {}) or {})
        values.update(overrides)

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            msg = f"Unknown COURTBOOK_SYNC keys: {', '.join(unknown)}"
            raise ValueError(msg)
        return cls(**values)

    @property
    def socket_url(self) -> str:
        return self.base_url.rstrip("/")
