"""
Authorization gate for groups and messages.

Membership facts come from a ``MembershipLookup``. Two implementations
exist: ``DirectMembershipLookup`` reads the store on every call and
``CachedMembershipLookup`` puts a read-through membership cache in
front of it. The gate behaves the same with either one; the cache only
saves store reads.
"""
from __future__ import annotations

from typing import Optional, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from chat_api.core.errors import PermissionDenied
from chat_api.models.group_member import GroupMember, ROLE_ADMIN
from chat_api.models.message import Message
from chat_api.services.membership_cache import BaseMembershipCache

NOT_A_MEMBER = "You are not a member of this group"
ADMIN_REQUIRED = "Only group admins can perform this action"


class MembershipLookup(Protocol):
    def is_member(self, user_id: str, group_id: str) -> bool: ...

    def get_role(self, user_id: str, group_id: str) -> Optional[str]: ...


class DirectMembershipLookup:
    """Answers every question from the membership table."""

    def __init__(self, db: Session):
        self.db = db

    def _find(self, user_id: str, group_id: str) -> GroupMember | None:
        stmt = select(GroupMember).where(
            GroupMember.group_id == group_id,
            GroupMember.user_id == user_id,
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def is_member(self, user_id: str, group_id: str) -> bool:
        return self._find(user_id, group_id) is not None

    def get_role(self, user_id: str, group_id: str) -> Optional[str]:
        member = self._find(user_id, group_id)
        return member.role if member else None


class CachedMembershipLookup:
    """
    Read-through cache over ``DirectMembershipLookup``.

    Plain membership checks trust a cache hit. Roles are never cached, so
    ``get_role`` always goes to the store.
    """

    def __init__(self, db: Session, cache: BaseMembershipCache, ttl: int | None = None):
        self.direct = DirectMembershipLookup(db)
        self.cache = cache
        self.ttl = ttl

    def is_member(self, user_id: str, group_id: str) -> bool:
        cached = self.cache.get(user_id, group_id)
        if cached is not None:
            return cached

        is_member = self.direct.is_member(user_id, group_id)
        self.cache.set(user_id, group_id, is_member, self.ttl)
        return is_member

    def get_role(self, user_id: str, group_id: str) -> Optional[str]:
        role = self.direct.get_role(user_id, group_id)
        self.cache.set(user_id, group_id, role is not None, self.ttl)
        return role


def build_membership_lookup(
    db: Session,
    cache: BaseMembershipCache | None,
    enabled: bool = True,
    ttl: int | None = None,
) -> MembershipLookup:
    if enabled and cache is not None:
        return CachedMembershipLookup(db, cache, ttl)
    return DirectMembershipLookup(db)


class AccessGate:
    def __init__(self, lookup: MembershipLookup):
        self.lookup = lookup

    def is_member(self, user_id: str, group_id: str) -> bool:
        return self.lookup.is_member(user_id, group_id)

    def require_access(self, user_id: str, group_id: str, require_admin: bool = False) -> None:
        """
        Raise ``PermissionDenied`` unless the user belongs to the group
        (and holds the admin role when ``require_admin`` is set).
        """
        if not self.lookup.is_member(user_id, group_id):
            raise PermissionDenied(NOT_A_MEMBER)

        if require_admin and self.lookup.get_role(user_id, group_id) != ROLE_ADMIN:
            raise PermissionDenied(ADMIN_REQUIRED)

    def can_read_message(self, user_id: str, message: Message) -> bool:
        if message.group_id is not None:
            return self.is_member(user_id, message.group_id)
        return user_id in (message.sender_id, message.receiver_id)

    def can_write_message(self, user_id: str, message: Message) -> bool:
        return message.sender_id == user_id
