import pytest

from courtbook.realtime.events.types import AdminNotificationEvent
from courtbook.realtime.events.types import BookingCancelledEvent
from courtbook.realtime.events.types import BookingEvent
from courtbook.realtime.events.types import EventKind
from courtbook.realtime.events.types import PaymentEvent
from courtbook.realtime.events.types import SlotLockEvent
from courtbook.sync.stores.notifications import AdminNotification
from courtbook.sync.stores.notifications import NotificationStore
from courtbook.sync.stores.notifications import RecentEventFilter
from courtbook.sync.stores.notifications import notification_from_event
from courtbook.sync.tests.fakes import booking


def _created(booking_id="b-1", **fields):
    return BookingEvent(
        booking=booking(booking_id, **fields),
        club_id="club-1",
        court_id="court-1",
    )


def _payment(**fields):
    values = {
        "payment_id": "p-1",
        "booking_id": "b-1",
        "club_id": "club-1",
        "amount": "40.00",
        "currency": "EUR",
        "reason": None,
    }
    values.update(fields)
    return PaymentEvent(**values)


@pytest.fixture
def store(clock):
    return NotificationStore(clock=clock)


class TestNotificationFromEvent:
    def test_booking_created_names_player_and_court(self):
        event = _created(user_name="Ana", court_name="Center")

        notification = notification_from_event(EventKind.BOOKING_CREATED, event)

        assert notification.type == "BOOKING_CREATED"
        assert notification.summary == "New booking created by Ana for Center"
        assert notification.booking_id == "b-1"
        assert notification.id.startswith("booking_created-b-1-")

    def test_booking_created_without_player(self):
        notification = notification_from_event(EventKind.BOOKING_CREATED, _created())

        assert notification.summary == "New booking created for Court court-1"

    def test_booking_updated_mentions_status_change(self):
        event = BookingEvent(
            booking=booking("b-1", booking_status="checked_in"),
            club_id="club-1",
            court_id="court-1",
            previous_status="confirmed",
        )

        notification = notification_from_event(EventKind.BOOKING_UPDATED, event)

        assert "(confirmed -> checked_in)" in notification.summary

    def test_cancelled_and_payments(self):
        cancelled = BookingCancelledEvent(booking_id="b-1", club_id="club-1", court_id="court-2")
        assert (
            notification_from_event(EventKind.BOOKING_CANCELLED, cancelled).summary
            == "Booking cancelled for Court court-2"
        )

        confirmed = notification_from_event(EventKind.PAYMENT_CONFIRMED, _payment())
        assert confirmed.summary == "Payment confirmed: EUR 40.00"
        assert confirmed.payment_id == "p-1"

        failed = notification_from_event(
            EventKind.PAYMENT_FAILED,
            _payment(reason="card_declined"),
        )
        assert failed.summary == "Payment failed: card_declined"

    def test_admin_notification_keeps_server_id(self):
        event = AdminNotificationEvent(
            notification={"id": "n-1", "type": "REFUND", "summary": "Refund requested"},
            club_id="club-1",
        )

        notification = notification_from_event(EventKind.ADMIN_NOTIFICATION, event)

        assert notification.id == "n-1"
        assert notification.type == "REFUND"
        assert notification.read is False

    def test_slot_events_produce_nothing(self):
        lock = SlotLockEvent(
            slot_id="s-1",
            club_id="club-1",
            court_id="court-1",
            start_time="10:00",
            end_time="11:00",
        )

        assert notification_from_event(EventKind.SLOT_LOCKED, lock) is None


def test_recent_event_filter_window(clock):
    recent = RecentEventFilter(5.0, clock=clock)

    assert recent.seen_recently("k") is False
    clock.advance(4.9)
    assert recent.seen_recently("k") is True
    clock.advance(5)
    assert recent.seen_recently("k") is False


class TestNotificationStore:
    def test_duplicate_event_within_window_is_dropped(self, store, clock):
        assert store.add_from_event(EventKind.BOOKING_CREATED, _created()) is not None
        assert store.add_from_event(EventKind.BOOKING_CREATED, _created()) is None
        assert len(store) == 1

        clock.advance(6)
        assert store.add_from_event(EventKind.BOOKING_CREATED, _created()) is not None
        assert len(store) == 2

    def test_same_notification_id_is_stored_once(self, store):
        notification = AdminNotification(id="n-1", type="OTHER", summary="hi")

        assert store.add(notification) is True
        assert store.add(notification) is False

    def test_newest_first_and_read_tracking(self, store):
        store.add(AdminNotification(id="n-1", type="OTHER", summary="first"))
        store.add(AdminNotification(id="n-2", type="OTHER", summary="second"))

        assert [n.id for n in store.notifications] == ["n-2", "n-1"]
        assert store.unread_count == 2

        assert store.mark_read("n-1") is True
        assert store.mark_read("n-1") is False
        assert store.unread_count == 1

        assert store.mark_all_read() == 1
        assert store.unread_count == 0

    def test_clear(self, store):
        store.add_from_event(EventKind.BOOKING_CREATED, _created())

        store.clear()

        assert len(store) == 0
        assert store.add_from_event(EventKind.BOOKING_CREATED, _created()) is not None
