from __future__ import annotations

from typing import Any

from courtbook.realtime.events.types import BookingCancelledEvent
from courtbook.realtime.events.types import BookingEvent
from courtbook.realtime.events.types import EventKind
from courtbook.realtime.events.types import SlotLockEvent
from courtbook.realtime.socketio import emit_event_to_club


def build_booking_payload(
    booking: dict[str, Any],
    *,
    previous_status: str | None = None,
) -> dict[str, Any]:
    return BookingEvent(
        booking=dict(booking),
        club_id=str(booking["club_id"]),
        court_id=str(booking["court_id"]),
        previous_status=previous_status,
    ).to_payload()


def publish_booking_created(booking: dict[str, Any]) -> None:
    """Publish a newly created booking to everyone watching its club."""

    payload = build_booking_payload(booking)
    emit_event_to_club(payload["club_id"], EventKind.BOOKING_CREATED.value, payload)


def publish_booking_updated(
    booking: dict[str, Any],
    *,
    previous_status: str | None = None,
) -> None:
    payload = build_booking_payload(booking, previous_status=previous_status)
    emit_event_to_club(payload["club_id"], EventKind.BOOKING_UPDATED.value, payload)


def publish_booking_cancelled(booking_id: str, *, club_id: str, court_id: str) -> None:
    payload = BookingCancelledEvent(
        booking_id=str(booking_id),
        club_id=str(club_id),
        court_id=str(court_id),
    ).to_payload()
    emit_event_to_club(club_id, EventKind.BOOKING_CANCELLED.value, payload)


def _publish_slot(kind: EventKind, lock: SlotLockEvent) -> None:
    emit_event_to_club(lock.club_id, kind.value, lock.to_payload())


def publish_slot_locked(lock: SlotLockEvent) -> None:
    _publish_slot(EventKind.SLOT_LOCKED, lock)


def publish_slot_unlocked(lock: SlotLockEvent) -> None:
    _publish_slot(EventKind.SLOT_UNLOCKED, lock)


def publish_lock_expired(lock: SlotLockEvent) -> None:
    _publish_slot(EventKind.LOCK_EXPIRED, lock)
