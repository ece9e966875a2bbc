"""Per-user container for the client sync state.

Build one at sign-in, call `start()`, and `reset()` it at logout. Nothing in
`courtbook.sync` is a module-level singleton.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from typing import Any

from courtbook.sync.cache import CLUBS
from courtbook.sync.cache import COURTS
from courtbook.sync.cache import ORGANIZATIONS
from courtbook.sync.cache import EntityCacheStore
from courtbook.sync.channel import ChannelCallbacks
from courtbook.sync.channel import RealtimeChannel
from courtbook.sync.http import ApiClient
from courtbook.sync.stores.bookings import BookingStore
from courtbook.sync.stores.notifications import NotificationStore
from courtbook.sync.tokens import SocketTokenProvider
from courtbook.sync.transport import SocketIOTransport

if TYPE_CHECKING:
    import httpx

    from courtbook.sync.config import SyncConfig
    from courtbook.sync.transport import Transport

logger = logging.getLogger(__name__)


class SyncSession:
    def __init__(
        self,
        config: SyncConfig,
        *,
        transport: Transport | None = None,
        http_client: httpx.AsyncClient | None = None,
        callbacks: ChannelCallbacks | None = None,
    ):
        self.config = config
        self.api = ApiClient(
            config.base_url,
            timeout=config.http_timeout,
            client=http_client,
        )

        self.courts = EntityCacheStore(self.api, COURTS, max_age=config.entity_max_age)
        self.clubs = EntityCacheStore(self.api, CLUBS, max_age=config.entity_max_age)
        self.organizations = EntityCacheStore(
            self.api,
            ORGANIZATIONS,
            max_age=config.entity_max_age,
        )
        self.bookings = BookingStore(self.api, max_age=config.booking_max_age)
        self.notifications = NotificationStore()
        self.tokens = SocketTokenProvider(self.api)

        self._transport = transport
        self._callbacks = callbacks
        self.channel: RealtimeChannel | None = None

    @property
    def caches(self) -> tuple[EntityCacheStore, ...]:
        return (self.courts, self.clubs, self.organizations)

    async def on_reconnect(self) -> Any:
        """Default resync: force-refresh the booking day on screen."""

        return await self.bookings.refresh()

    def build_channel(self, club_id: str | None = None) -> RealtimeChannel:
        transport = self._transport or SocketIOTransport(
            self.config.socket_url,
            socketio_path=self.config.socketio_path,
            reconnection_attempts=self.config.reconnection_attempts,
            reconnection_delay=self.config.reconnection_delay,
            reconnection_delay_max=self.config.reconnection_delay_max,
        )
        return RealtimeChannel(
            transport,
            club_id=club_id,
            callbacks=self._callbacks,
            on_reconnect=self.on_reconnect,
            booking_store=self.bookings,
            notification_store=self.notifications,
            debounce_window=self.config.debounce_window,
        )

    async def start(self, club_id: str | None = None) -> RealtimeChannel:
        if self.channel is None or self.channel.closed:
            self.channel = self.build_channel(club_id)
        else:
            await self.channel.set_active_club(club_id)

        if self.config.auto_connect and not self.channel.is_connected:
            token = await self.tokens.get_token()
            if token is None:
                logger.warning(
                    "No socket token (%s); realtime updates disabled",
                    self.tokens.error,
                )
                return self.channel
            self.channel.token = token
            await self.channel.connect()
        return self.channel

    async def reset(self) -> None:
        """Drop everything tied to the signed-in user."""

        if self.channel is not None:
            await self.channel.disconnect()
            self.channel = None
        for cache in self.caches:
            cache.invalidate()
        self.bookings.clear()
        self.notifications.clear()
        self.tokens.clear()
        logger.info("Sync session reset")

    async def aclose(self) -> None:
        await self.reset()
        await self.api.aclose()
