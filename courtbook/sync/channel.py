"""Realtime channel: connection state plus typed event dispatch.

The channel owns every listener it registers on the transport and removes
each one exactly once on `disconnect()`. Missed events are never replayed;
after a reconnect the `on_reconnect` hook is the only way to catch up.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
from collections.abc import Awaitable
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING
from typing import Any

from courtbook.realtime.events.types import AdminNotificationEvent
from courtbook.realtime.events.types import BookingCancelledEvent
from courtbook.realtime.events.types import BookingEvent
from courtbook.realtime.events.types import DomainEvent
from courtbook.realtime.events.types import EventKind
from courtbook.realtime.events.types import PaymentEvent
from courtbook.realtime.events.types import SlotLockEvent
from courtbook.realtime.events.types import parse_event
from courtbook.sync.debounce import KeyedDebouncer
from courtbook.sync.exceptions import ChannelConnectionError
from courtbook.sync.exceptions import ChannelError

if TYPE_CHECKING:
    from courtbook.sync.stores.bookings import BookingStore
    from courtbook.sync.stores.notifications import NotificationStore
    from courtbook.sync.transport import Transport

logger = logging.getLogger(__name__)

EventCallback = Callable[[dict[str, Any]], Any]


class ConnectionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


@dataclass
class ChannelCallbacks:
    on_booking_created: EventCallback | None = None
    on_booking_updated: EventCallback | None = None
    on_booking_cancelled: EventCallback | None = None
    on_slot_locked: EventCallback | None = None
    on_slot_unlocked: EventCallback | None = None
    on_lock_expired: EventCallback | None = None
    on_payment_confirmed: EventCallback | None = None
    on_payment_failed: EventCallback | None = None
    on_admin_notification: EventCallback | None = None
    on_connect: Callable[[], Any] | None = None
    on_disconnect: Callable[[str | None], Any] | None = None
    on_error: Callable[[Exception], Any] | None = None

    def for_kind(self, kind: EventKind) -> EventCallback | None:
        return getattr(self, f"on_{kind.value}")


class RealtimeChannel:
    def __init__(  # noqa: PLR0913
        self,
        transport: Transport,
        *,
        club_id: str | None = None,
        token: str | None = None,
        callbacks: ChannelCallbacks | None = None,
        on_reconnect: Callable[[], Any] | None = None,
        booking_store: BookingStore | None = None,
        notification_store: NotificationStore | None = None,
        debounce_window: float = 0.0,
        auto_connect: bool = False,
    ):
        self.transport = transport
        self.club_id = None if club_id is None else str(club_id)
        self.token = token
        self.callbacks = callbacks or ChannelCallbacks()
        self.on_reconnect = on_reconnect
        self.booking_store = booking_store
        self.notification_store = notification_store

        self.state = ConnectionState.IDLE
        self.reconnect_attempt_count = 0
        self.last_reconnect_attempt: int | None = None

        self._closed = False
        self._listeners: list[tuple[str, Callable[..., None]]] = []
        self._tasks: set[asyncio.Future] = set()
        self._debouncer = KeyedDebouncer(self._apply_booking_update, debounce_window)
        if booking_store is not None:
            booking_store.before_write = self._settle_pending

        self._listen("connect", self.handle_connect)
        self._listen("disconnect", self.handle_disconnect)
        self._listen("reconnect", self.handle_reconnect)
        self._listen("connect_error", self._handle_connect_error)
        for kind in EventKind:
            self._listen(kind.value, functools.partial(self.dispatch, kind))

        if auto_connect:
            # Requires a running loop; connect failures are logged by _spawn.
            self._spawn(self.connect(), "auto connect")

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    @property
    def socket_id(self) -> str | None:
        return self.transport.sid if self.is_connected else None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    @property
    def pending_updates(self) -> int:
        return len(self._debouncer)

    # Lifecycle

    async def connect(self) -> None:
        if self._closed:
            msg = "Channel has been torn down"
            raise ChannelError(msg)
        if self.state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
            return

        self.state = ConnectionState.CONNECTING
        logger.info("Connecting realtime channel (club=%s)", self.club_id)
        try:
            await self.transport.connect(self._auth())
        except Exception as exc:
            if not self._closed:
                self.state = ConnectionState.DISCONNECTED
            msg = f"Realtime connection failed: {exc}"
            raise ChannelConnectionError(msg) from exc

    async def disconnect(self) -> None:
        """Tear the channel down. Safe to call more than once."""

        if self._closed:
            return
        self._closed = True
        was_open = self.state is not ConnectionState.IDLE

        for event, listener in self._listeners:
            self.transport.off(event, listener)
        self._listeners = []
        self._debouncer.cancel_all()
        if (
            self.booking_store is not None
            and self.booking_store.before_write == self._settle_pending
        ):
            self.booking_store.before_write = None
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

        self.state = ConnectionState.IDLE
        if was_open:
            await self.transport.disconnect()
        logger.info("Realtime channel closed")

    async def set_active_club(self, club_id: str | None) -> None:
        club_id = None if club_id is None else str(club_id)
        if club_id == self.club_id:
            return

        previous = self.club_id
        # Pending writes were scoped to the old club.
        self._debouncer.cancel_all()
        self.club_id = club_id
        if self.state is not ConnectionState.CONNECTED:
            return
        if previous is not None:
            await self.transport.emit("unsubscribe_club", {"club_id": previous})
        if club_id is not None:
            await self.transport.emit("subscribe_club", {"club_id": club_id})

    async def drain(self) -> None:
        """Wait for reconnect hooks and other background work to settle."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # Transport signal entry points

    def handle_connect(self) -> None:
        if self._closed:
            return
        self.state = ConnectionState.CONNECTED
        logger.info("Realtime channel connected (sid=%s)", self.transport.sid)
        if self.callbacks.on_connect is not None:
            self.callbacks.on_connect()

    def handle_disconnect(self, reason: str | None = None) -> None:
        if self._closed:
            return
        # Updates received before the gap land before any resync.
        self._debouncer.flush_all()
        if self.state is not ConnectionState.IDLE:
            self.state = ConnectionState.DISCONNECTED
        logger.info("Realtime channel disconnected (%s)", reason or "no reason")
        if self.callbacks.on_disconnect is not None:
            self.callbacks.on_disconnect(reason)

    def handle_reconnect(self, attempt: int = 1) -> None:
        if self._closed:
            return
        self._debouncer.flush_all()
        self.state = ConnectionState.CONNECTED
        self.reconnect_attempt_count += 1
        self.last_reconnect_attempt = attempt
        logger.info("Realtime channel reconnected after %s attempt(s)", attempt)

        if self.club_id is not None:
            self._spawn(
                self.transport.emit("subscribe_club", {"club_id": self.club_id}),
                "club resubscribe",
            )

        if self.on_reconnect is not None:
            result = self.on_reconnect()
            if inspect.isawaitable(result):
                self._spawn(result, "on_reconnect")

    def dispatch(self, kind: EventKind | str, payload: Any) -> None:
        if self._closed:
            logger.debug("Dropping %s received after teardown", kind)
            return

        event = parse_event(kind, payload)
        kind = EventKind(kind)
        callback = self.callbacks.for_kind(kind)
        try:
            if callback is not None:
                callback(payload)
        finally:
            _HANDLERS[kind](self, event)

    # Event application

    def _in_scope(self, event: DomainEvent) -> bool:
        if self.booking_store is None:
            return False
        if self.club_id is not None and event.club_id != self.club_id:
            logger.debug(
                "Ignoring event for club %s while %s is active",
                event.club_id,
                self.club_id,
            )
            return False
        return True

    def _notify(self, kind: EventKind, event: DomainEvent) -> None:
        if self.notification_store is not None:
            self.notification_store.add_from_event(kind, event)

    def _apply_booking_update(self, event: BookingEvent) -> None:
        if self._in_scope(event):
            self.booking_store.upsert_booking(event.booking)

    def _settle_pending(self, booking_id: str | None) -> None:
        if booking_id is None:
            self._debouncer.flush_all()
        else:
            self._debouncer.flush(booking_id)

    def _on_booking_created(self, event: BookingEvent) -> None:
        self._debouncer.flush(event.entity_id)
        if self._in_scope(event):
            self.booking_store.upsert_booking(event.booking)
        self._notify(EventKind.BOOKING_CREATED, event)

    def _on_booking_updated(self, event: BookingEvent) -> None:
        self._debouncer.submit(event.entity_id, event)
        self._notify(EventKind.BOOKING_UPDATED, event)

    def _on_booking_cancelled(self, event: BookingCancelledEvent) -> None:
        self._debouncer.flush(event.booking_id)
        if self._in_scope(event):
            self.booking_store.remove_booking(event.booking_id)
        self._notify(EventKind.BOOKING_CANCELLED, event)

    def _on_slot_locked(self, event: SlotLockEvent) -> None:
        if self._in_scope(event):
            self.booking_store.add_locked_slot(event)

    def _on_slot_released(self, event: SlotLockEvent) -> None:
        if self._in_scope(event):
            self.booking_store.remove_locked_slot(event.slot_id)

    def _on_payment_confirmed(self, event: PaymentEvent) -> None:
        self._notify(EventKind.PAYMENT_CONFIRMED, event)

    def _on_payment_failed(self, event: PaymentEvent) -> None:
        self._notify(EventKind.PAYMENT_FAILED, event)

    def _on_admin_notification(self, event: AdminNotificationEvent) -> None:
        self._notify(EventKind.ADMIN_NOTIFICATION, event)

    # Plumbing

    def _auth(self) -> dict[str, Any]:
        auth: dict[str, Any] = {}
        if self.token:
            auth["token"] = self.token
        if self.club_id is not None:
            auth["club_id"] = self.club_id
        return auth

    def _handle_connect_error(self, data: Any = None) -> None:
        if self._closed:
            return
        logger.warning("Realtime connection error: %s", data)
        self._report(ChannelConnectionError(str(data)))

    def _listen(self, event: str, handler: Callable[..., None]) -> None:
        def listener(*args: Any) -> None:
            try:
                handler(*args)
            except Exception as exc:
                # Must not reach the transport; the connection stays up.
                logger.exception("Realtime %s handler failed", event)
                self._report(exc)

        self.transport.on(event, listener)
        self._listeners.append((event, listener))

    def _report(self, exc: Exception) -> None:
        if self.callbacks.on_error is None:
            return
        try:
            self.callbacks.on_error(exc)
        except Exception:
            logger.exception("on_error callback failed")

    def _spawn(self, awaitable: Awaitable[Any], what: str) -> None:
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)
        task.add_done_callback(functools.partial(self._task_done, what))

    def _task_done(self, what: str, task: asyncio.Future) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Realtime %s failed", what, exc_info=exc)
            if isinstance(exc, Exception):
                self._report(exc)


_HANDLERS: dict[EventKind, Callable[[RealtimeChannel, Any], None]] = {
    EventKind.BOOKING_CREATED: RealtimeChannel._on_booking_created,  # noqa: SLF001
    EventKind.BOOKING_UPDATED: RealtimeChannel._on_booking_updated,  # noqa: SLF001
    EventKind.BOOKING_CANCELLED: RealtimeChannel._on_booking_cancelled,  # noqa: SLF001
    EventKind.SLOT_LOCKED: RealtimeChannel._on_slot_locked,  # noqa: SLF001
    EventKind.SLOT_UNLOCKED: RealtimeChannel._on_slot_released,  # noqa: SLF001
    EventKind.LOCK_EXPIRED: RealtimeChannel._on_slot_released,  # noqa: SLF001
    EventKind.PAYMENT_CONFIRMED: RealtimeChannel._on_payment_confirmed,  # noqa: SLF001
    EventKind.PAYMENT_FAILED: RealtimeChannel._on_payment_failed,  # noqa: SLF001
    EventKind.ADMIN_NOTIFICATION: RealtimeChannel._on_admin_notification,  # noqa: SLF001
}

if set(_HANDLERS) != set(EventKind):  # pragma: no cover - import-time guard
    _missing = sorted(k.value for k in set(EventKind) - set(_HANDLERS))
    msg = f"No channel handler for: {', '.join(_missing)}"
    raise RuntimeError(msg)
