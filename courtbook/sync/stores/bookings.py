"""Booking list for the club operations calendar.

REST results and socket events both write through `upsert_booking`, so the
last write handled wins regardless of where it came from. A channel that
holds socket updates back installs `before_write`, which lets it apply them
ahead of any REST result. Embedded `updated_at` timestamps are ignored:
they are not monotonic across reconnects.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING
from typing import Any

if TYPE_CHECKING:
    from courtbook.realtime.events.types import SlotLockEvent
    from courtbook.sync.http import ApiClient

logger = logging.getLogger(__name__)

# Seconds a slot lock is honoured client-side without an unlock/expiry event.
LOCK_EXPIRATION_SECONDS = 5 * 60


@dataclass(frozen=True)
class LockedSlot:
    slot_id: str
    court_id: str
    club_id: str
    start_time: str
    end_time: str
    locked_at: float
    user_id: str | None = None


class BookingStore:
    def __init__(
        self,
        api: ApiClient,
        *,
        max_age: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.api = api
        self.max_age = max_age
        self.clock = clock

        self.bookings: dict[str, dict[str, Any]] = {}
        self.locked_slots: dict[str, LockedSlot] = {}
        self.loading = False
        self.error: str | None = None
        self.last_fetched_at: float | None = None
        self.last_params: tuple[str, str] | None = None

        self._inflight: dict[tuple[str, str], asyncio.Task] = {}
        self._requested: tuple[str, str] | None = None
        self._generation = 0
        # Called with a booking id before a REST write, or None before the day is replaced.
        self.before_write: Callable[[str | None], Any] | None = None

    @property
    def club_id(self) -> str | None:
        return self.last_params[0] if self.last_params else None

    # Selectors

    def get_booking(self, booking_id: str) -> dict[str, Any] | None:
        return self.bookings.get(str(booking_id))

    def bookings_for_court(self, court_id: str) -> list[dict[str, Any]]:
        return [
            b for b in self.bookings.values() if str(b.get("court_id")) == str(court_id)
        ]

    def is_slot_locked(self, court_id: str, start_time: str, end_time: str) -> bool:
        return any(
            lock.court_id == str(court_id)
            and lock.start_time == start_time
            and lock.end_time == end_time
            for lock in self.locked_slots.values()
        )

    def locked_slots_for_court(self, court_id: str) -> list[LockedSlot]:
        return [
            lock for lock in self.locked_slots.values() if lock.court_id == str(court_id)
        ]

    # Fetching

    def set_bookings(self, bookings: list[dict[str, Any]]) -> None:
        self.bookings = {str(b["id"]): dict(b) for b in bookings}

    async def fetch_bookings_for_day(self, club_id: str, date: str) -> list[dict[str, Any]]:
        params = (str(club_id), str(date))
        self._requested = params

        task = self._inflight.get(params)
        if task is None:
            task = asyncio.ensure_future(self._fetch(params, self._generation))
            self._inflight[params] = task
            self.loading = True
            self.error = None
        return await asyncio.shield(task)

    async def fetch_bookings_if_needed(
        self,
        club_id: str,
        date: str,
        *,
        force: bool = False,
    ) -> list[dict[str, Any]]:
        params = (str(club_id), str(date))
        fresh = (
            self.last_params == params
            and self.last_fetched_at is not None
            and self.clock() - self.last_fetched_at < self.max_age
        )
        if fresh and not force:
            return list(self.bookings.values())
        return await self.fetch_bookings_for_day(club_id, date)

    async def refresh(self) -> list[dict[str, Any]]:
        """Re-fetch the last loaded day; used to resync after a reconnect."""

        if self.last_params is None:
            return []
        club_id, date = self.last_params
        return await self.fetch_bookings_if_needed(club_id, date, force=True)

    async def _fetch(self, params: tuple[str, str], generation: int) -> list[dict[str, Any]]:
        me = asyncio.current_task()
        club_id, date = params
        try:
            data = await self.api.get(
                f"/api/admin/clubs/{club_id}/operations/bookings",
                params={"date": date},
                error_message="Failed to fetch bookings",
            )
            records = data.get("bookings", []) if isinstance(data, dict) else data
            records = [dict(r) for r in records or []]
        except Exception as exc:
            if generation == self._generation:
                self.error = getattr(exc, "message", None) or str(exc)
            raise
        else:
            if generation == self._generation and params == self._requested:
                self._settle(None)
                self.set_bookings(records)
                self.last_params = params
                self.last_fetched_at = self.clock()
            return records
        finally:
            if self._inflight.get(params) is me:
                del self._inflight[params]
            self.loading = bool(self._inflight)

    # Writes shared by REST results and socket events

    def upsert_booking(self, booking: dict[str, Any]) -> bool:
        """Replace the booking with the same id, or append it.

        Returns False when the stored record is already identical.
        """

        booking_id = str(booking["id"])
        current = self.bookings.get(booking_id)
        if current == booking:
            return False
        self.bookings[booking_id] = dict(booking)
        return True

    def remove_booking(self, booking_id: str) -> bool:
        return self.bookings.pop(str(booking_id), None) is not None

    def _settle(self, booking_id: str | None) -> None:
        if self.before_write is not None:
            self.before_write(booking_id)

    async def create_booking(self, payload: dict[str, Any]) -> dict[str, Any]:
        self.error = None
        try:
            data = await self.api.post(
                "/api/admin/bookings/create",
                payload,
                error_message="Failed to create booking",
            )
        except Exception as exc:
            self.error = getattr(exc, "message", None) or str(exc)
            raise

        booking = data.get("booking", data) if isinstance(data, dict) else data
        if isinstance(booking, dict) and booking.get("id"):
            self._settle(str(booking["id"]))
            self.upsert_booking(booking)
        return data

    async def cancel_booking(self, booking_id: str) -> dict[str, Any] | None:
        self.error = None
        try:
            data = await self.api.patch(
                f"/api/admin/bookings/{booking_id}",
                {"status": "cancelled"},
                error_message="Failed to cancel booking",
            )
        except Exception as exc:
            self.error = getattr(exc, "message", None) or str(exc)
            raise

        if isinstance(data, dict) and data.get("id"):
            self._settle(str(data["id"]))
            self.upsert_booking(data)
        return data

    # Slot locks

    def add_locked_slot(self, event: SlotLockEvent) -> bool:
        if event.slot_id in self.locked_slots:
            logger.debug("Slot %s already locked, ignoring duplicate", event.slot_id)
            return False
        self.locked_slots[event.slot_id] = LockedSlot(
            slot_id=event.slot_id,
            court_id=event.court_id,
            club_id=event.club_id,
            start_time=event.start_time,
            end_time=event.end_time,
            user_id=event.user_id,
            locked_at=self.clock(),
        )
        return True

    def remove_locked_slot(self, slot_id: str) -> bool:
        return self.locked_slots.pop(str(slot_id), None) is not None

    def cleanup_expired_locks(self) -> int:
        now = self.clock()
        expired = [
            slot_id
            for slot_id, lock in self.locked_slots.items()
            if now - lock.locked_at >= LOCK_EXPIRATION_SECONDS
        ]
        for slot_id in expired:
            del self.locked_slots[slot_id]
        if expired:
            logger.debug("Cleaned up %d expired slot locks", len(expired))
        return len(expired)

    # Lifecycle

    def invalidate(self) -> None:
        """Make the next fetch hit the network without dropping what is shown."""

        self.last_fetched_at = None

    def clear(self) -> None:
        self._generation += 1
        self.bookings = {}
        self.locked_slots = {}
        self.loading = False
        self.error = None
        self.last_fetched_at = None
        self.last_params = None
        self._inflight = {}
        self._requested = None
