from __future__ import annotations

from courtbook.realtime.events.types import InvalidEventError


class SyncError(Exception):
    """Base class for client synchronization errors."""


class ApiError(SyncError):
    """A REST call failed.

    `status_code` is None for transport failures (connection refused,
    timeout) and the HTTP status for application errors.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ChannelError(SyncError):
    """Misuse of the realtime channel (e.g. connecting a torn-down channel)."""


class ChannelConnectionError(ChannelError):
    """The transport could not establish a connection."""


__all__ = [
    "ApiError",
    "ChannelConnectionError",
    "ChannelError",
    "InvalidEventError",
    "SyncError",
]
