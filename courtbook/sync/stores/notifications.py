"""Admin notification feed fed by realtime events."""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable
from collections.abc import Hashable
from dataclasses import dataclass
from dataclasses import replace
from datetime import UTC
from datetime import datetime

from courtbook.realtime.events.types import AdminNotificationEvent
from courtbook.realtime.events.types import BookingCancelledEvent
from courtbook.realtime.events.types import BookingEvent
from courtbook.realtime.events.types import DomainEvent
from courtbook.realtime.events.types import EventKind
from courtbook.realtime.events.types import PaymentEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AdminNotification:
    id: str
    type: str
    summary: str
    club_id: str | None = None
    booking_id: str | None = None
    payment_id: str | None = None
    read: bool = False
    created_at: str = ""


def _generate_id(kind: EventKind, entity_id: str) -> str:
    return f"{kind.value}-{entity_id}-{uuid.uuid4().hex[:8]}"


def _now_iso() -> str:
    return datetime.now(tz=UTC).isoformat()


def _court_label(event: BookingEvent) -> str:
    return event.booking.get("court_name") or f"Court {event.court_id}"


def notification_from_event(  # noqa: PLR0911
    kind: EventKind,
    event: DomainEvent,
) -> AdminNotification | None:
    """Turn a booking/payment event into a feed entry; None for other kinds."""

    if kind is EventKind.ADMIN_NOTIFICATION and isinstance(event, AdminNotificationEvent):
        data = event.notification
        return AdminNotification(
            id=str(data["id"]),
            type=str(data.get("type", "OTHER")),
            summary=str(data.get("summary", "")),
            club_id=event.club_id,
            booking_id=data.get("booking_id"),
            read=bool(data.get("read", False)),
            created_at=data.get("created_at") or _now_iso(),
        )

    if kind is EventKind.BOOKING_CREATED and isinstance(event, BookingEvent):
        player = event.booking.get("user_name") or event.booking.get("user_email")
        by_player = f" by {player}" if player else ""
        return AdminNotification(
            id=_generate_id(kind, event.entity_id),
            type="BOOKING_CREATED",
            summary=f"New booking created{by_player} for {_court_label(event)}",
            club_id=event.club_id,
            booking_id=event.entity_id,
            created_at=_now_iso(),
        )

    if kind is EventKind.BOOKING_UPDATED and isinstance(event, BookingEvent):
        status = event.booking.get("booking_status")
        change = f" ({event.previous_status} -> {status})" if event.previous_status else ""
        return AdminNotification(
            id=_generate_id(kind, event.entity_id),
            type="BOOKING_UPDATED",
            summary=f"Booking updated{change} for {_court_label(event)}",
            club_id=event.club_id,
            booking_id=event.entity_id,
            created_at=_now_iso(),
        )

    if kind is EventKind.BOOKING_CANCELLED and isinstance(event, BookingCancelledEvent):
        return AdminNotification(
            id=_generate_id(kind, event.booking_id),
            type="BOOKING_CANCELLED",
            summary=f"Booking cancelled for Court {event.court_id}",
            club_id=event.club_id,
            booking_id=event.booking_id,
            created_at=_now_iso(),
        )

    if kind is EventKind.PAYMENT_CONFIRMED and isinstance(event, PaymentEvent):
        return AdminNotification(
            id=_generate_id(kind, event.payment_id),
            type="PAYMENT_CONFIRMED",
            summary=f"Payment confirmed: {event.currency} {event.amount}",
            club_id=event.club_id,
            booking_id=event.booking_id,
            payment_id=event.payment_id,
            created_at=_now_iso(),
        )

    if kind is EventKind.PAYMENT_FAILED and isinstance(event, PaymentEvent):
        return AdminNotification(
            id=_generate_id(kind, event.payment_id),
            type="PAYMENT_FAILED",
            summary=f"Payment failed: {event.reason}",
            club_id=event.club_id,
            booking_id=event.booking_id,
            payment_id=event.payment_id,
            created_at=_now_iso(),
        )

    return None


class RecentEventFilter:
    """Drops a (kind, entity id) pair seen again within `window` seconds."""

    def __init__(
        self,
        window: float = 5.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.window = window
        self.clock = clock
        self._seen: dict[Hashable, float] = {}

    def seen_recently(self, key: Hashable) -> bool:
        now = self.clock()
        self._seen = {k: t for k, t in self._seen.items() if now - t < self.window}
        if key in self._seen:
            return True
        self._seen[key] = now
        return False

    def clear(self) -> None:
        self._seen.clear()


class NotificationStore:
    def __init__(
        self,
        *,
        duplicate_window: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._items: dict[str, AdminNotification] = {}
        self._recent = RecentEventFilter(duplicate_window, clock=clock)

    def __len__(self) -> int:
        return len(self._items)

    @property
    def notifications(self) -> list[AdminNotification]:
        # Newest first.
        return list(reversed(self._items.values()))

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self._items.values() if not n.read)

    def add(self, notification: AdminNotification) -> bool:
        if notification.id in self._items:
            return False
        self._items[notification.id] = notification
        return True

    def add_from_event(self, kind: EventKind, event: DomainEvent) -> AdminNotification | None:
        if self._recent.seen_recently((kind, event.entity_id)):
            logger.debug("Duplicate %s for %s ignored", kind.value, event.entity_id)
            return None
        notification = notification_from_event(kind, event)
        if notification is None or not self.add(notification):
            return None
        return notification

    def mark_read(self, notification_id: str) -> bool:
        current = self._items.get(notification_id)
        if current is None or current.read:
            return False
        self._items[notification_id] = replace(current, read=True)
        return True

    def mark_all_read(self) -> int:
        count = 0
        for notification_id in list(self._items):
            count += self.mark_read(notification_id)
        return count

    def clear(self) -> None:
        self._items.clear()
        self._recent.clear()
