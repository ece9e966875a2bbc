"""Global Socket.IO server for booking clients.

One server instance carries every realtime feature: booking calendar
updates, slot locks, payments and admin notifications. Clients are placed in
rooms derived from their role:

- `user_<id>`: always.
- `root_admin`: root users.
- `organization_<id>`: organization admins.
- `club_<id>`: clubs the user may manage, plus the club passed in
  `auth.club_id` or later via `subscribe_club`.

Auth: `query.token` or `auth.token` (socket token issued by
`GET /api/socket/token`).
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import parse_qs

import socketio
from asgiref.sync import async_to_sync
from asgiref.sync import sync_to_async
from django.conf import settings
from rest_framework_simplejwt.exceptions import TokenError
from socketio.exceptions import ConnectionRefusedError as SocketRefused

from courtbook.realtime.access import SocketUserContext
from courtbook.realtime.access import build_user_context
from courtbook.realtime.access import can_access_club
from courtbook.realtime.tokens import is_expired_token
from courtbook.realtime.tokens import read_socket_token

logger = logging.getLogger(__name__)

ROOT_ADMIN_ROOM = "root_admin"


def _client_manager() -> socketio.AsyncManager | None:
    # Redis lets Django worker processes publish into the ASGI process.
    url = getattr(settings, "REDIS_URL", "")
    if not url:
        return None
    return socketio.AsyncRedisManager(url)


sio = socketio.AsyncServer(
    async_mode="asgi",
    client_manager=_client_manager(),
    cors_allowed_origins=getattr(settings, "REALTIME_CORS_ALLOWED_ORIGINS", "*"),
    logger=False,
    engineio_logger=False,
)


def _normalize_room_suffix(value: str) -> str:
    return "_".join(str(value).strip().lower().split())


def room_for_user(user_id: str) -> str:
    return f"user_{_normalize_room_suffix(user_id)}"


def room_for_club(club_id: str) -> str:
    return f"club_{_normalize_room_suffix(club_id)}"


def room_for_organization(organization_id: str) -> str:
    return f"organization_{_normalize_room_suffix(organization_id)}"


def rooms_for_context(ctx: SocketUserContext) -> list[str]:
    rooms = [room_for_user(ctx.user_id)]
    if ctx.is_root:
        rooms.append(ROOT_ADMIN_ROOM)
    rooms.extend(room_for_organization(org_id) for org_id in ctx.organization_ids)
    rooms.extend(room_for_club(club_id) for club_id in ctx.club_ids)
    return rooms


def _extract_token(environ: dict[str, Any], auth: Any | None) -> str | None:
    """Extract the socket token from Socket.IO environ/auth.

    Handles python-socketio environ shapes across ASGI/WSGI servers.
    """

    scope: Any = environ
    if isinstance(environ, dict) and "asgi.scope" in environ:
        inner = environ.get("asgi.scope")
        if isinstance(inner, dict):
            scope = inner

    query_string: str | bytes = ""
    if isinstance(scope, dict) and "query_string" in scope:
        query_string = scope.get("query_string", b"")
    elif isinstance(scope, dict) and "QUERY_STRING" in scope:
        query_string = scope.get("QUERY_STRING", "")

    if isinstance(query_string, (bytes, bytearray)):
        query_string = query_string.decode(errors="ignore")

    token = parse_qs(str(query_string)).get("token", [None])[0]
    if isinstance(token, str) and token:
        return token

    # Allow `auth: { token }` as fallback.
    if isinstance(auth, dict):
        auth_token = auth.get("token")
        if isinstance(auth_token, str) and auth_token:
            return auth_token

    return None


def _context_from_session(session: Any) -> SocketUserContext | None:
    if not isinstance(session, dict) or "user_id" not in session:
        return None
    return SocketUserContext(
        user_id=session["user_id"],
        is_root=bool(session.get("is_root")),
        organization_ids=tuple(session.get("organization_ids", ())),
        club_ids=tuple(session.get("club_ids", ())),
    )


@sio.event
async def connect(sid: str, environ: dict[str, Any], auth: Any | None = None):
    token = _extract_token(environ, auth)
    if not token:
        msg = "unauthorized"
        raise SocketRefused(msg)

    try:
        claims = read_socket_token(token)
        ctx = await sync_to_async(build_user_context)(
            claims.user_id,
            is_root=claims.is_root,
        )
    except TokenError as exc:
        if is_expired_token(token):
            msg = "jwt_expired"
            raise SocketRefused(msg) from exc
        msg = "unauthorized"
        raise SocketRefused(msg) from exc
    except Exception as exc:
        logger.exception("Socket.IO connect error")
        msg = "server_error"
        raise SocketRefused(msg) from exc

    await sio.save_session(
        sid,
        {
            "user_id": ctx.user_id,
            "is_root": ctx.is_root,
            "organization_ids": list(ctx.organization_ids),
            "club_ids": list(ctx.club_ids),
        },
    )

    for room in rooms_for_context(ctx):
        await sio.enter_room(sid, room)

    # The client's active club, when it is allowed to watch it.
    requested_club = auth.get("club_id") if isinstance(auth, dict) else None
    if requested_club:
        if can_access_club(ctx, str(requested_club)):
            await sio.enter_room(sid, room_for_club(str(requested_club)))
        else:
            logger.warning(
                "User %s denied club room %s on connect",
                ctx.user_id,
                requested_club,
            )

    logger.info("Socket %s connected for user %s", sid, ctx.user_id)


@sio.event
async def disconnect(sid: str, *args: Any):
    # Rooms/session are cleaned up automatically.
    logger.info("Socket %s disconnected %s", sid, args[0] if args else "")


def _club_id_from(data: Any) -> str | None:
    # Clients send either `{"club_id": ...}` or the bare id.
    if isinstance(data, dict):
        data = data.get("club_id")
    if data is None or data == "":
        return None
    return str(data)


@sio.event
async def subscribe_club(sid: str, data: Any) -> dict[str, Any]:
    club_id = _club_id_from(data)
    ctx = _context_from_session(await sio.get_session(sid))
    if ctx is None or not club_id:
        return {"ok": False, "error": "unauthorized"}
    if not can_access_club(ctx, club_id):
        logger.warning("User %s denied subscription to club %s", ctx.user_id, club_id)
        return {"ok": False, "error": "forbidden"}
    await sio.enter_room(sid, room_for_club(club_id))
    return {"ok": True, "club_id": club_id}


@sio.event
async def unsubscribe_club(sid: str, data: Any) -> dict[str, Any]:
    club_id = _club_id_from(data)
    if not club_id:
        return {"ok": False, "error": "invalid"}
    await sio.leave_room(sid, room_for_club(club_id))
    return {"ok": True, "club_id": club_id}


def emit_event_to_room(room: str, event: str, payload: dict[str, Any]) -> None:
    """Emit an event to a room from sync Django code."""

    async_to_sync(sio.emit)(event, payload, room=room)


def emit_event_to_user(user_id: str, event: str, payload: dict[str, Any]) -> None:
    emit_event_to_room(room_for_user(user_id), event, payload)


def emit_event_to_club(club_id: str, event: str, payload: dict[str, Any]) -> None:
    emit_event_to_room(room_for_club(club_id), event, payload)


def emit_event_to_organization(
    organization_id: str,
    event: str,
    payload: dict[str, Any],
) -> None:
    emit_event_to_room(room_for_organization(organization_id), event, payload)


def emit_event_to_root_admins(event: str, payload: dict[str, Any]) -> None:
    emit_event_to_room(ROOT_ADMIN_ROOM, event, payload)
