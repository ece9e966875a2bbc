from __future__ import annotations

from typing import Any

from courtbook.realtime.events.types import AdminNotificationEvent
from courtbook.realtime.events.types import EventKind
from courtbook.realtime.socketio import emit_event_to_club
from courtbook.realtime.socketio import emit_event_to_organization
from courtbook.realtime.socketio import emit_event_to_root_admins


def build_admin_notification_payload(
    notification: dict[str, Any],
    *,
    club_id: str,
    organization_id: str | None = None,
) -> dict[str, Any]:
    return AdminNotificationEvent(
        notification={
            "id": str(notification["id"]),
            "type": notification.get("type", "OTHER"),
            "summary": notification.get("summary", ""),
            "booking_id": notification.get("booking_id"),
            "read": bool(notification.get("read", False)),
            "created_at": notification.get("created_at"),
        },
        club_id=str(club_id),
        organization_id=None if organization_id is None else str(organization_id),
    ).to_payload()


def publish_admin_notification(
    notification: dict[str, Any],
    *,
    club_id: str,
    organization_id: str | None = None,
) -> None:
    """Publish an admin notification to every admin level above the club.

    Club admins, the owning organization's admins and root admins each get
    one copy; a user sitting in several of those rooms receives duplicates,
    which the client drops by notification id.
    """

    payload = build_admin_notification_payload(
        notification,
        club_id=club_id,
        organization_id=organization_id,
    )
    event = EventKind.ADMIN_NOTIFICATION.value

    emit_event_to_club(club_id, event, payload)
    if organization_id is not None:
        emit_event_to_organization(organization_id, event, payload)
    emit_event_to_root_admins(event, payload)
