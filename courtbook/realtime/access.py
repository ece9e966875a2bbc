"""Who may listen to which rooms.

Memberships live in the CRUD layer (organizations, clubs, admin roles). The
realtime server only consumes them through a `MembershipLookup` callable,
configured with the `REALTIME_MEMBERSHIP_LOOKUP` dotted path.
"""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field
from typing import Protocol

from django.conf import settings
from django.utils.module_loading import import_string


@dataclass(frozen=True)
class Memberships:
    organization_ids: tuple[str, ...] = ()
    # Clubs the user manages directly plus every club of a managed organization.
    club_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class SocketUserContext:
    user_id: str
    is_root: bool = False
    organization_ids: tuple[str, ...] = field(default_factory=tuple)
    club_ids: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_admin(self) -> bool:
        return self.is_root or bool(self.organization_ids) or bool(self.club_ids)


class MembershipLookup(Protocol):
    def __call__(self, user_id: str) -> Memberships: ...


def no_memberships(user_id: str) -> Memberships:
    """Default lookup: the user administers nothing."""

    _ = user_id
    return Memberships()


def get_membership_lookup() -> MembershipLookup:
    dotted = getattr(settings, "REALTIME_MEMBERSHIP_LOOKUP", "")
    if not dotted:
        return no_memberships
    return import_string(dotted)


def build_user_context(user_id: str, *, is_root: bool = False) -> SocketUserContext:
    if is_root:
        # Root admins see everything through the root room.
        return SocketUserContext(user_id=str(user_id), is_root=True)

    memberships = get_membership_lookup()(str(user_id))
    return SocketUserContext(
        user_id=str(user_id),
        is_root=False,
        organization_ids=tuple(str(i) for i in memberships.organization_ids),
        club_ids=tuple(str(i) for i in memberships.club_ids),
    )


def can_access_club(ctx: SocketUserContext, club_id: str) -> bool:
    if ctx.is_root:
        return True
    return str(club_id) in ctx.club_ids
