"""Domain event vocabulary shared by the Socket.IO server and the sync client.

Every payload is plain JSON with snake_case keys and always carries the
tenant scoping `club_id`. Events carry the full current entity (never a
delta), so applying the same event twice is idempotent. There is no sequence
number: arrival order is the only ordering.
"""

from __future__ import annotations

from dataclasses import asdict
from dataclasses import dataclass
from dataclasses import field
from enum import Enum
from typing import Any


class InvalidEventError(ValueError):
    """Raised when an inbound payload does not match its event kind."""


class EventKind(str, Enum):
    BOOKING_CREATED = "booking_created"
    BOOKING_UPDATED = "booking_updated"
    BOOKING_CANCELLED = "booking_cancelled"
    SLOT_LOCKED = "slot_locked"
    SLOT_UNLOCKED = "slot_unlocked"
    LOCK_EXPIRED = "lock_expired"
    PAYMENT_CONFIRMED = "payment_confirmed"
    PAYMENT_FAILED = "payment_failed"
    ADMIN_NOTIFICATION = "admin_notification"


SLOT_KINDS = frozenset(
    {EventKind.SLOT_LOCKED, EventKind.SLOT_UNLOCKED, EventKind.LOCK_EXPIRED},
)
PAYMENT_KINDS = frozenset({EventKind.PAYMENT_CONFIRMED, EventKind.PAYMENT_FAILED})


@dataclass(frozen=True)
class BookingEvent:
    booking: dict[str, Any]
    club_id: str
    court_id: str
    previous_status: str | None = None

    @property
    def entity_id(self) -> str:
        return str(self.booking["id"])

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class BookingCancelledEvent:
    booking_id: str
    club_id: str
    court_id: str

    @property
    def entity_id(self) -> str:
        return self.booking_id

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SlotLockEvent:
    slot_id: str
    club_id: str
    court_id: str
    start_time: str
    end_time: str
    user_id: str | None = None

    @property
    def entity_id(self) -> str:
        return self.slot_id

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PaymentEvent:
    payment_id: str
    booking_id: str
    club_id: str
    amount: str | None = None
    currency: str | None = None
    reason: str | None = None

    @property
    def entity_id(self) -> str:
        return self.payment_id

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class AdminNotificationEvent:
    notification: dict[str, Any]
    club_id: str
    organization_id: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def entity_id(self) -> str:
        return str(self.notification["id"])

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)


DomainEvent = (
    BookingEvent
    | BookingCancelledEvent
    | SlotLockEvent
    | PaymentEvent
    | AdminNotificationEvent
)

_PAYLOAD_TYPES: dict[EventKind, type] = {
    EventKind.BOOKING_CREATED: BookingEvent,
    EventKind.BOOKING_UPDATED: BookingEvent,
    EventKind.BOOKING_CANCELLED: BookingCancelledEvent,
    EventKind.SLOT_LOCKED: SlotLockEvent,
    EventKind.SLOT_UNLOCKED: SlotLockEvent,
    EventKind.LOCK_EXPIRED: SlotLockEvent,
    EventKind.PAYMENT_CONFIRMED: PaymentEvent,
    EventKind.PAYMENT_FAILED: PaymentEvent,
    EventKind.ADMIN_NOTIFICATION: AdminNotificationEvent,
}

if set(_PAYLOAD_TYPES) != set(EventKind):  # pragma: no cover - import-time guard
    _missing = sorted(k.value for k in set(EventKind) - set(_PAYLOAD_TYPES))
    msg = f"No payload type registered for: {', '.join(_missing)}"
    raise RuntimeError(msg)


def _require_str(data: dict[str, Any], key: str, kind: EventKind) -> str:
    value = data.get(key)
    if value is None or value == "":
        msg = f"{kind.value} payload is missing '{key}'"
        raise InvalidEventError(msg)
    return str(value)


def _optional_str(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    return None if value is None else str(value)


def parse_event(kind: EventKind | str, payload: Any) -> DomainEvent:  # noqa: PLR0911
    """Build the typed event for `kind` from a raw JSON payload."""

    try:
        kind = EventKind(kind)
    except ValueError as exc:
        msg = f"Unknown event kind: {kind!r}"
        raise InvalidEventError(msg) from exc

    if not isinstance(payload, dict):
        msg = f"{kind.value} payload must be an object, got {type(payload).__name__}"
        raise InvalidEventError(msg)

    club_id = _require_str(payload, "club_id", kind)

    if kind in (EventKind.BOOKING_CREATED, EventKind.BOOKING_UPDATED):
        booking = payload.get("booking")
        if not isinstance(booking, dict) or not booking.get("id"):
            msg = f"{kind.value} payload must carry a booking with an id"
            raise InvalidEventError(msg)
        return BookingEvent(
            booking=dict(booking),
            club_id=club_id,
            court_id=_require_str(payload, "court_id", kind),
            previous_status=_optional_str(payload, "previous_status"),
        )

    if kind is EventKind.BOOKING_CANCELLED:
        return BookingCancelledEvent(
            booking_id=_require_str(payload, "booking_id", kind),
            club_id=club_id,
            court_id=_require_str(payload, "court_id", kind),
        )

    if kind in SLOT_KINDS:
        return SlotLockEvent(
            slot_id=_require_str(payload, "slot_id", kind),
            club_id=club_id,
            court_id=_require_str(payload, "court_id", kind),
            start_time=_require_str(payload, "start_time", kind),
            end_time=_require_str(payload, "end_time", kind),
            user_id=_optional_str(payload, "user_id"),
        )

    if kind in PAYMENT_KINDS:
        return PaymentEvent(
            payment_id=_require_str(payload, "payment_id", kind),
            booking_id=_require_str(payload, "booking_id", kind),
            club_id=club_id,
            amount=_optional_str(payload, "amount"),
            currency=_optional_str(payload, "currency"),
            reason=_optional_str(payload, "reason"),
        )

    notification = payload.get("notification")
    if not isinstance(notification, dict) or not notification.get("id"):
        msg = "admin_notification payload must carry a notification with an id"
        raise InvalidEventError(msg)
    return AdminNotificationEvent(
        notification=dict(notification),
        club_id=club_id,
        organization_id=_optional_str(payload, "organization_id"),
        extra=dict(payload.get("extra") or {}),
    )
