"""Short-lived JWTs used only to authenticate Socket.IO connections."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from django.conf import settings
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import AccessToken


class SocketToken(AccessToken):
    token_type = "socket"  # noqa: S105 - token type label, not a secret

    @property
    def lifetime(self) -> timedelta:  # type: ignore[override]
        minutes = getattr(settings, "SOCKET_TOKEN_LIFETIME_MINUTES", 15)
        return timedelta(minutes=int(minutes))


@dataclass(frozen=True)
class SocketTokenClaims:
    user_id: str
    is_root: bool


def issue_socket_token(user) -> str:
    token = SocketToken.for_user(user)
    token["is_root"] = bool(getattr(user, "is_superuser", False))
    return str(token)


def read_socket_token(raw: str) -> SocketTokenClaims:
    """Validate `raw` and return its claims.

    Raises `rest_framework_simplejwt.exceptions.TokenError` when the token is
    malformed, expired or of another type.
    """

    token = SocketToken(raw)
    return SocketTokenClaims(
        user_id=str(token["user_id"]),
        is_root=bool(token.get("is_root", False)),
    )


def is_expired_token(raw: str) -> bool:
    """True only for a well-formed socket token whose `exp` has passed."""

    try:
        token = SocketToken(raw, verify=False)
    except TokenError:
        return False
    try:
        token.check_exp()
    except TokenError:
        return True
    return False
