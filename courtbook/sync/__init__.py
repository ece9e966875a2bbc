"""Client-side state synchronization.

Entity caches with inflight de-duplication, the booking and notification
stores, and the realtime channel that keeps them current. Construct one
`SyncSession` per signed-in user and reset it on logout.
"""

from .cache import CLUBS
from .cache import COURTS
from .cache import ORGANIZATIONS
from .cache import EntityCacheStore
from .cache import Resource
from .channel import ChannelCallbacks
from .channel import ConnectionState
from .channel import RealtimeChannel
from .config import SyncConfig
from .session import SyncSession

__all__ = [
    "CLUBS",
    "COURTS",
    "ORGANIZATIONS",
    "ChannelCallbacks",
    "ConnectionState",
    "EntityCacheStore",
    "RealtimeChannel",
    "Resource",
    "SyncConfig",
    "SyncSession",
]
