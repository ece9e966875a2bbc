"""Realtime infrastructure (Socket.IO server, rooms, publishers).

Booking calendars, slot locks, payments and admin notifications share one
socket server. Event payload shapes live in `courtbook.realtime.events.types`
so the sync client and the publishers cannot drift apart.
"""
