import asyncio

import pytest

from courtbook.realtime.events.types import EventKind
from courtbook.sync.channel import ChannelCallbacks
from courtbook.sync.channel import ConnectionState
from courtbook.sync.channel import RealtimeChannel
from courtbook.sync.exceptions import ChannelConnectionError
from courtbook.sync.exceptions import ChannelError
from courtbook.sync.exceptions import InvalidEventError
from courtbook.sync.stores.bookings import BookingStore
from courtbook.sync.stores.notifications import NotificationStore
from courtbook.sync.tests.fakes import FakeTransport
from courtbook.sync.tests.fakes import booking

TRANSPORT_EVENTS = 4
DAY_PATH = "/api/admin/clubs/club-1/operations/bookings"


def _booking_payload(booking_id="b-1", club_id="club-1", **fields):
    return {
        "booking": booking(booking_id, club_id=club_id, **fields),
        "club_id": club_id,
        "court_id": "court-1",
    }


def _lock_payload(slot_id="slot-1", club_id="club-1"):
    return {
        "slot_id": slot_id,
        "club_id": club_id,
        "court_id": "court-1",
        "start_time": "10:00",
        "end_time": "11:00",
    }


@pytest.fixture
def bookings(api, clock):
    return BookingStore(api, clock=clock)


@pytest.fixture
def notifications(clock):
    return NotificationStore(clock=clock)


@pytest.fixture
def make_channel(transport, bookings, notifications):
    def factory(**kwargs):
        kwargs.setdefault("club_id", "club-1")
        kwargs.setdefault("booking_store", bookings)
        kwargs.setdefault("notification_store", notifications)
        return RealtimeChannel(transport, **kwargs)

    return factory


class TestRegistration:
    def test_registers_transport_and_domain_listeners(self, make_channel, transport):
        channel = make_channel()

        expected = TRANSPORT_EVENTS + len(EventKind)
        assert channel.listener_count == expected
        assert transport.listener_count() == expected
        for kind in EventKind:
            assert len(transport.handlers[kind.value]) == 1

    def test_every_kind_has_a_callback_slot(self):
        callbacks = ChannelCallbacks()
        for kind in EventKind:
            assert callbacks.for_kind(kind) is None


@pytest.mark.asyncio
class TestStateMachine:
    async def test_connect_goes_through_connecting(self, make_channel, transport):
        states = []
        channel = make_channel(token="tok")
        transport.handlers["connect"].insert(0, lambda: states.append(channel.state))

        assert channel.state is ConnectionState.IDLE
        await channel.connect()

        assert states == [ConnectionState.CONNECTING]
        assert channel.state is ConnectionState.CONNECTED
        assert channel.is_connected
        assert channel.socket_id == "sid-1"
        assert transport.connect_calls == [{"token": "tok", "club_id": "club-1"}]

    async def test_connect_waits_for_transport_signal(self, make_channel, transport):
        channel = make_channel()
        transport.handlers["connect"].clear()

        await channel.connect()

        assert channel.state is ConnectionState.CONNECTING
        assert channel.socket_id is None

    async def test_failed_connect_raises_and_marks_disconnected(self, make_channel):
        transport = FakeTransport(fail_connect=OSError("refused"))
        channel = make_channel()
        channel.transport = transport

        with pytest.raises(ChannelConnectionError, match="refused"):
            await channel.connect()
        assert channel.state is ConnectionState.DISCONNECTED

    async def test_network_loss_then_reconnect(self, make_channel, transport):
        channel = make_channel()
        await channel.connect()

        transport.fire("disconnect", "transport close")
        assert channel.state is ConnectionState.DISCONNECTED
        assert not channel.is_connected

        transport.fire("reconnect", 3)
        assert channel.state is ConnectionState.CONNECTED
        assert channel.reconnect_attempt_count == 1
        assert channel.last_reconnect_attempt == 3

    async def test_explicit_disconnect_ends_idle(self, make_channel, transport):
        channel = make_channel()
        await channel.connect()

        await channel.disconnect()

        assert channel.state is ConnectionState.IDLE
        assert transport.disconnect_calls == 1

    async def test_connect_after_teardown_is_rejected(self, make_channel):
        channel = make_channel()
        await channel.disconnect()

        with pytest.raises(ChannelError):
            await channel.connect()

    async def test_auto_connect_schedules_connect(self, make_channel, transport):
        channel = make_channel(auto_connect=True)
        await channel.drain()

        assert channel.is_connected
        assert len(transport.connect_calls) == 1

    async def test_connect_and_disconnect_callbacks(self, make_channel, transport):
        seen = []
        channel = make_channel(
            callbacks=ChannelCallbacks(
                on_connect=lambda: seen.append("connect"),
                on_disconnect=lambda reason: seen.append(("disconnect", reason)),
            ),
        )
        await channel.connect()
        transport.fire("disconnect", "ping timeout")

        assert seen == ["connect", ("disconnect", "ping timeout")]


@pytest.mark.asyncio
class TestReconnectHook:
    async def test_on_reconnect_fires_once_per_reconnect(self, make_channel, transport):
        calls = []
        channel = make_channel(on_reconnect=lambda: calls.append(channel.state))
        await channel.connect()

        for attempt in (1, 2):
            transport.fire("disconnect", "transport close")
            transport.fire("reconnect", attempt)

        assert calls == [ConnectionState.CONNECTED, ConnectionState.CONNECTED]

    async def test_store_entries_survive_reconnect(self, make_channel, transport, bookings):
        channel = make_channel(on_reconnect=lambda: None)
        await channel.connect()
        transport.fire("booking_created", _booking_payload("b-1"))

        transport.fire("disconnect", "transport close")
        transport.fire("reconnect", 1)

        assert channel.is_connected
        assert bookings.get_booking("b-1") is not None

    async def test_throwing_hook_does_not_break_later_reconnects(
        self,
        make_channel,
        transport,
    ):
        calls = []
        errors = []

        def hook():
            calls.append(len(calls))
            if len(calls) == 1:
                msg = "refresh failed"
                raise RuntimeError(msg)

        channel = make_channel(
            on_reconnect=hook,
            callbacks=ChannelCallbacks(on_error=errors.append),
        )
        await channel.connect()

        transport.fire("disconnect", "transport close")
        transport.fire("reconnect", 1)
        assert channel.state is ConnectionState.CONNECTED
        assert channel.reconnect_attempt_count == 1

        transport.fire("disconnect", "transport close")
        transport.fire("reconnect", 1)

        assert calls == [0, 1]
        assert channel.reconnect_attempt_count == 2
        assert [str(e) for e in errors] == ["refresh failed"]

    async def test_direct_call_propagates_hook_error(self, make_channel):
        def hook():
            msg = "boom"
            raise RuntimeError(msg)

        channel = make_channel(on_reconnect=hook)

        with pytest.raises(RuntimeError, match="boom"):
            channel.handle_reconnect(1)
        assert channel.state is ConnectionState.CONNECTED

    async def test_async_hook_is_awaited_in_background(self, make_channel, transport):
        done = asyncio.Event()

        async def hook():
            done.set()

        channel = make_channel(on_reconnect=hook)
        await channel.connect()
        transport.fire("reconnect", 1)
        await channel.drain()

        assert done.is_set()

    async def test_reconnect_resubscribes_active_club(self, make_channel, transport):
        channel = make_channel()
        await channel.connect()

        transport.fire("disconnect", "transport close")
        transport.fire("reconnect", 1)
        await channel.drain()

        assert transport.emitted == [("subscribe_club", {"club_id": "club-1"})]


@pytest.mark.asyncio
class TestDispatch:
    async def test_created_then_updated_leaves_one_record(
        self,
        make_channel,
        transport,
        bookings,
    ):
        make_channel()

        transport.fire("booking_created", _booking_payload("b-1"))
        transport.fire("booking_updated", _booking_payload("b-1", booking_status="checked_in"))

        assert len(bookings.bookings) == 1
        assert bookings.get_booking("b-1")["booking_status"] == "checked_in"

    async def test_duplicate_delivery_is_idempotent(self, make_channel, transport, bookings):
        make_channel()
        payload = _booking_payload("b-1")

        transport.fire("booking_created", payload)
        snapshot = dict(bookings.bookings)
        transport.fire("booking_created", payload)

        assert bookings.bookings == snapshot

    async def test_cancelled_removes_booking(self, make_channel, transport, bookings):
        make_channel()
        transport.fire("booking_created", _booking_payload("b-1"))

        transport.fire(
            "booking_cancelled",
            {"booking_id": "b-1", "club_id": "club-1", "court_id": "court-1"},
        )

        assert bookings.get_booking("b-1") is None

    async def test_slot_events(self, make_channel, transport, bookings):
        make_channel()

        transport.fire("slot_locked", _lock_payload("slot-1"))
        transport.fire("slot_locked", _lock_payload("slot-2"))
        assert set(bookings.locked_slots) == {"slot-1", "slot-2"}

        transport.fire("slot_unlocked", _lock_payload("slot-1"))
        transport.fire("lock_expired", _lock_payload("slot-2"))
        assert bookings.locked_slots == {}

    async def test_callback_receives_raw_payload(self, make_channel, transport):
        seen = []
        make_channel(callbacks=ChannelCallbacks(on_booking_created=seen.append))
        payload = _booking_payload("b-1")

        transport.fire("booking_created", payload)

        assert seen == [payload]

    async def test_other_club_is_not_applied_but_callback_fires(
        self,
        make_channel,
        transport,
        bookings,
    ):
        seen = []
        make_channel(callbacks=ChannelCallbacks(on_booking_created=seen.append))

        transport.fire("booking_created", _booking_payload("b-9", club_id="club-2"))
        transport.fire("slot_locked", _lock_payload("slot-9", club_id="club-2"))

        assert bookings.bookings == {}
        assert bookings.locked_slots == {}
        assert len(seen) == 1

    async def test_payment_and_admin_events_feed_notifications(
        self,
        make_channel,
        transport,
        notifications,
    ):
        make_channel()

        transport.fire(
            "payment_confirmed",
            {
                "payment_id": "p-1",
                "booking_id": "b-1",
                "club_id": "club-2",
                "amount": "20.00",
                "currency": "EUR",
            },
        )
        transport.fire(
            "admin_notification",
            {"notification": {"id": "n-1", "summary": "Court 3 flooded"}, "club_id": "club-1"},
        )

        assert [n.id for n in notifications.notifications][0] == "n-1"
        assert len(notifications) == 2

    async def test_failing_callback_still_applies_event(
        self,
        make_channel,
        transport,
        bookings,
    ):
        def explode(payload):
            msg = "ui crashed"
            raise RuntimeError(msg)

        make_channel(callbacks=ChannelCallbacks(on_booking_created=explode))

        transport.fire("booking_created", _booking_payload("b-1"))

        assert bookings.get_booking("b-1") is not None

    async def test_invalid_payload_is_contained_by_listener(self, make_channel, transport):
        errors = []
        make_channel(callbacks=ChannelCallbacks(on_error=errors.append))

        transport.fire("booking_created", {"club_id": "club-1"})

        assert isinstance(errors[0], InvalidEventError)

    async def test_direct_dispatch_propagates(self, make_channel):
        channel = make_channel()

        with pytest.raises(InvalidEventError):
            channel.dispatch(EventKind.BOOKING_CREATED, {"club_id": "club-1"})
        with pytest.raises(InvalidEventError):
            channel.dispatch("court_exploded", {"club_id": "club-1"})

    async def test_events_apply_while_disconnected(self, make_channel, transport, bookings):
        channel = make_channel()
        await channel.connect()
        transport.fire("disconnect", "transport close")

        channel.dispatch("booking_created", _booking_payload("b-1"))

        assert bookings.get_booking("b-1") is not None


@pytest.mark.asyncio
class TestDebounce:
    async def test_updates_are_coalesced_per_booking(self, make_channel, transport, bookings):
        channel = make_channel(debounce_window=0.01)
        bookings.upsert_booking(booking("b-1"))

        for status in ("checked_in", "no_show", "completed"):
            transport.fire("booking_updated", _booking_payload("b-1", booking_status=status))

        assert bookings.get_booking("b-1")["booking_status"] == "confirmed"
        assert channel.pending_updates == 1

        await asyncio.sleep(0.05)
        assert bookings.get_booking("b-1")["booking_status"] == "completed"

    async def test_cancel_flushes_pending_update_first(
        self,
        make_channel,
        transport,
        bookings,
    ):
        make_channel(debounce_window=10)

        transport.fire("booking_updated", _booking_payload("b-1", booking_status="checked_in"))
        transport.fire(
            "booking_cancelled",
            {"booking_id": "b-1", "club_id": "club-1", "court_id": "court-1"},
        )

        assert bookings.get_booking("b-1") is None

    async def test_pending_update_lands_before_reconnect_resync(
        self,
        make_channel,
        transport,
        bookings,
        backend,
    ):
        backend.add("GET", DAY_PATH, {"bookings": [booking("b-1")]})
        backend.add("GET", DAY_PATH, {"bookings": [booking("b-1", booking_status="completed")]})
        await bookings.fetch_bookings_for_day("club-1", "2024-06-01")
        channel = make_channel(debounce_window=0.05, on_reconnect=bookings.refresh)

        transport.fire("booking_updated", _booking_payload("b-1", booking_status="checked_in"))
        transport.fire("disconnect", "transport close")
        assert channel.pending_updates == 0
        assert bookings.get_booking("b-1")["booking_status"] == "checked_in"

        transport.fire("reconnect", 1)
        await channel.drain()
        await asyncio.sleep(0.1)

        assert bookings.get_booking("b-1")["booking_status"] == "completed"

    async def test_rest_cancel_wins_over_pending_socket_update(
        self,
        make_channel,
        transport,
        bookings,
        backend,
    ):
        make_channel(debounce_window=0.05)
        bookings.upsert_booking(booking("b-1"))
        backend.add("PATCH", "/api/admin/bookings/b-1", booking("b-1", booking_status="cancelled"))

        transport.fire("booking_updated", _booking_payload("b-1", booking_status="checked_in"))
        await bookings.cancel_booking("b-1")
        await asyncio.sleep(0.1)

        assert bookings.get_booking("b-1")["booking_status"] == "cancelled"

    async def test_day_fetch_wins_over_pending_socket_update(
        self,
        make_channel,
        transport,
        bookings,
        backend,
    ):
        channel = make_channel(debounce_window=0.05)
        backend.add("GET", DAY_PATH, {"bookings": [booking("b-1", booking_status="no_show")]})

        transport.fire("booking_updated", _booking_payload("b-1", booking_status="checked_in"))
        await bookings.fetch_bookings_for_day("club-1", "2024-06-01")
        await asyncio.sleep(0.1)

        assert bookings.get_booking("b-1")["booking_status"] == "no_show"
        assert channel.pending_updates == 0

    async def test_teardown_releases_store_hook(self, make_channel, bookings):
        channel = make_channel()
        assert bookings.before_write is not None

        await channel.disconnect()

        assert bookings.before_write is None

    async def test_teardown_cancels_pending_updates(self, make_channel, transport, bookings):
        channel = make_channel(debounce_window=0.01)

        transport.fire("booking_updated", _booking_payload("b-1"))
        await channel.disconnect()
        await asyncio.sleep(0.05)

        assert bookings.bookings == {}
        assert channel.pending_updates == 0


@pytest.mark.asyncio
class TestTenantSwitch:
    async def test_switch_emits_unsubscribe_and_subscribe(self, make_channel, transport):
        channel = make_channel()
        await channel.connect()

        await channel.set_active_club("club-2")

        assert transport.emitted == [
            ("unsubscribe_club", {"club_id": "club-1"}),
            ("subscribe_club", {"club_id": "club-2"}),
        ]
        assert channel.club_id == "club-2"

    async def test_switch_changes_filter(self, make_channel, transport, bookings):
        channel = make_channel()

        await channel.set_active_club("club-2")
        transport.fire("booking_created", _booking_payload("b-1", club_id="club-1"))
        transport.fire("booking_created", _booking_payload("b-2", club_id="club-2"))

        assert list(bookings.bookings) == ["b-2"]
        assert transport.emitted == []

    async def test_same_club_is_noop(self, make_channel, transport):
        channel = make_channel()
        await channel.connect()

        await channel.set_active_club("club-1")

        assert transport.emitted == []


@pytest.mark.asyncio
class TestCleanup:
    async def test_every_listener_is_removed_exactly_once(self, make_channel, transport):
        channel = make_channel()
        registered = transport.listener_count()

        await channel.disconnect()
        await channel.disconnect()

        assert transport.listener_count() == 0
        assert len(transport.off_calls) == registered
        assert channel.listener_count == 0

    async def test_events_after_teardown_are_dropped(self, make_channel, transport, bookings):
        channel = make_channel()
        await channel.disconnect()

        channel.dispatch("booking_created", _booking_payload("b-1"))

        assert bookings.bookings == {}

    async def test_teardown_cancels_background_hooks(self, make_channel, transport):
        started = asyncio.Event()
        finished = []

        async def slow_hook():
            started.set()
            await asyncio.sleep(10)
            finished.append(True)

        channel = make_channel(on_reconnect=slow_hook)
        await channel.connect()
        transport.fire("reconnect", 1)
        await started.wait()

        await channel.disconnect()
        await asyncio.sleep(0)

        assert finished == []
