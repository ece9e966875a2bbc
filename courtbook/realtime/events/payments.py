from __future__ import annotations

from courtbook.realtime.events.types import EventKind
from courtbook.realtime.events.types import PaymentEvent
from courtbook.realtime.socketio import emit_event_to_club


def publish_payment_confirmed(
    payment_id: str,
    *,
    booking_id: str,
    club_id: str,
    amount: str,
    currency: str,
) -> None:
    payload = PaymentEvent(
        payment_id=str(payment_id),
        booking_id=str(booking_id),
        club_id=str(club_id),
        amount=str(amount),
        currency=currency,
    ).to_payload()
    emit_event_to_club(club_id, EventKind.PAYMENT_CONFIRMED.value, payload)


def publish_payment_failed(
    payment_id: str,
    *,
    booking_id: str,
    club_id: str,
    reason: str,
) -> None:
    payload = PaymentEvent(
        payment_id=str(payment_id),
        booking_id=str(booking_id),
        club_id=str(club_id),
        reason=reason,
    ).to_payload()
    emit_event_to_club(club_id, EventKind.PAYMENT_FAILED.value, payload)
