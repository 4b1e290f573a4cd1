"""
Group membership engine.

Invariants kept by every operation here:

* a group always has at least one admin;
* the creator (``Group.created_by_id``) is never removed, not even by
  themself. The creator can still be demoted while another admin exists;
* ``(group_id, user_id)`` is unique. The add path checks this itself for
  a readable error, and the unique constraint backs it up.

Removing the sole admin promotes the most senior plain member in the same
transaction; demoting the sole admin is refused outright.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import Select, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from chat_api.core.errors import Conflict, InvalidArgument, NotFound, PermissionDenied
from chat_api.crud import users as users_crud
from chat_api.models.group import Group
from chat_api.models.group_member import GroupMember, ROLE_ADMIN, ROLE_MEMBER, ROLES
from chat_api.services.access import AccessGate, NOT_A_MEMBER
from chat_api.services.membership_cache import BaseMembershipCache

logger = logging.getLogger(__name__)

MEMBER_REMOVED = "Member removed successfully"
LAST_ADMIN_REMOVAL = "Cannot remove the last admin. Group must have at least one admin."
LAST_ADMIN_DEMOTION = "Cannot demote the last admin. Group must have at least one admin."


@dataclass(frozen=True)
class MembershipResult:
    message: str
    changed: bool = True
    promoted_user_id: Optional[str] = None


def members_by_seniority(group_id: str, lock: bool = False) -> Select:
    """
    Members in seniority order: earliest ``joined_at`` first, then member id.

    With ``lock`` the rows are selected ``FOR UPDATE`` so that two
    concurrent removals or demotions cannot both count the same admins.
    SQLite has no row locks and ignores it.
    """
    stmt = (
        select(GroupMember)
        .where(GroupMember.group_id == group_id)
        .order_by(GroupMember.joined_at.asc(), GroupMember.id.asc())
    )
    if lock:
        stmt = stmt.with_for_update()
    return stmt


def _unique(ids: Iterable[str]) -> List[str]:
    seen = set()
    out = []
    for i in ids:
        if i not in seen:
            seen.add(i)
            out.append(i)
    return out


class GroupService:
    def __init__(self, db: Session, gate: AccessGate, cache: BaseMembershipCache | None = None):
        self.db = db
        self.gate = gate
        self.cache = cache

    # -- helpers ---------------------------------------------------------

    def _get_group(self, group_id: str) -> Group:
        group = self.db.get(Group, group_id)
        if group is None:
            raise NotFound(f"Group with ID {group_id} not found")
        return group

    def _members(self, group_id: str, lock: bool = False) -> List[GroupMember]:
        return list(self.db.execute(members_by_seniority(group_id, lock)).scalars().all())

    def _validate_users(self, user_ids: List[str]) -> None:
        active = users_crud.find_active_ids(self.db, user_ids)
        invalid = [uid for uid in user_ids if uid not in active]
        if invalid:
            raise InvalidArgument(f"One or more user IDs are invalid: {', '.join(invalid)}")

    def _invalidate(self, group_id: str, user_ids: Iterable[str]) -> None:
        if self.cache is not None:
            self.cache.invalidate_many(group_id, user_ids)

    # -- queries ---------------------------------------------------------

    def list_groups(self, user_id: str) -> List[Tuple[Group, int]]:
        """Groups the user belongs to with their member counts, most recently updated first."""
        counts = (
            select(GroupMember.group_id, func.count(GroupMember.id).label("member_count"))
            .group_by(GroupMember.group_id)
            .subquery()
        )
        stmt = (
            select(Group, counts.c.member_count)
            .join(GroupMember, GroupMember.group_id == Group.id)
            .join(counts, counts.c.group_id == Group.id)
            .where(GroupMember.user_id == user_id)
            .order_by(Group.updated_at.desc(), Group.id.desc())
        )
        return [(group, count) for group, count in self.db.execute(stmt).all()]

    def get_group(self, user_id: str, group_id: str) -> Group:
        group = self._get_group(group_id)
        self.gate.require_access(user_id, group_id)
        return group

    # -- mutations -------------------------------------------------------

    def create_group(
        self,
        creator_id: str,
        name: str,
        member_ids: Iterable[str],
        description: str | None = None,
    ) -> Group:
        # the creator is always added as admin; repeats of them (or anyone) collapse
        others = [uid for uid in _unique(member_ids) if uid != creator_id]
        self._validate_users(others)

        group = Group(name=name, description=description, created_by_id=creator_id)
        group.members.append(GroupMember(user_id=creator_id, role=ROLE_ADMIN))
        for uid in others:
            group.members.append(GroupMember(user_id=uid, role=ROLE_MEMBER))

        try:
            self.db.add(group)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(group)
        self._invalidate(group.id, [creator_id, *others])
        logger.info("Group %s created by %s with %d members", group.id, creator_id, len(others) + 1)
        return group

    def update_group(
        self,
        user_id: str,
        group_id: str,
        name: str | None = None,
        description: str | None = None,
    ) -> Group:
        group = self._get_group(group_id)
        self.gate.require_access(user_id, group_id, require_admin=True)

        if name is not None:
            group.name = name
        if description is not None:
            group.description = description

        self.db.add(group)
        self.db.commit()
        self.db.refresh(group)
        return group

    def add_members(self, actor_id: str, group_id: str, user_ids: Iterable[str]) -> Group:
        """
        Add every user as a plain member, or none of them.

        Raises:
            NotFound: group does not exist
            PermissionDenied: actor is not an admin of the group
            InvalidArgument: a target is unknown or deleted
            Conflict: a target is already a member (all such ids are named)
        """
        group = self._get_group(group_id)
        self.gate.require_access(actor_id, group_id, require_admin=True)

        targets = _unique(user_ids)
        if not targets:
            raise InvalidArgument("At least one user ID must be provided")
        self._validate_users(targets)

        stmt = select(GroupMember.user_id).where(
            GroupMember.group_id == group_id,
            GroupMember.user_id.in_(targets),
        )
        existing = set(self.db.execute(stmt).scalars().all())
        if existing:
            already = [uid for uid in targets if uid in existing]
            raise Conflict(f"Users {', '.join(already)} are already members of this group")

        try:
            for uid in targets:
                self.db.add(GroupMember(group_id=group_id, user_id=uid, role=ROLE_MEMBER))
            self.db.commit()
        except IntegrityError:
            # a concurrent add won the race; the unique constraint rejected the batch
            self.db.rollback()
            raise Conflict("One or more users are already members of this group") from None
        except Exception:
            self.db.rollback()
            raise

        self._invalidate(group_id, targets)
        logger.info("Added %d members to group %s", len(targets), group_id)

        self.db.refresh(group)
        return group

    def remove_member(self, actor_id: str, group_id: str, target_id: str) -> MembershipResult:
        """
        Remove ``target_id`` from the group.

        Anyone may leave; only admins remove others; nobody removes the
        creator. When the target is the sole admin, the most senior plain
        member is promoted in the same transaction, and the removal is
        refused if there is nobody to promote.
        """
        group = self._get_group(group_id)
        members = self._members(group_id, lock=True)
        by_user = {m.user_id: m for m in members}

        actor = by_user.get(actor_id)
        if actor is None:
            raise PermissionDenied(NOT_A_MEMBER)

        target = by_user.get(target_id)
        if target is None:
            raise NotFound("User is not a member of this group")

        if target_id == group.created_by_id:
            raise PermissionDenied("Cannot remove the group creator")

        if actor_id != target_id and not actor.is_admin:
            raise PermissionDenied("Only admins can remove other members")

        admins = [m for m in members if m.is_admin]
        successor = None
        if target.is_admin and len(admins) == 1:
            successor = next(
                (m for m in members if m.role == ROLE_MEMBER and m.user_id != target_id),
                None,
            )
            if successor is None:
                raise PermissionDenied(LAST_ADMIN_REMOVAL)

        try:
            if successor is not None:
                successor.role = ROLE_ADMIN
                self.db.add(successor)
            self.db.delete(target)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        if successor is None:
            self._invalidate(group_id, [target_id])
            logger.info("User %s removed from group %s by %s", target_id, group_id, actor_id)
            return MembershipResult(message=MEMBER_REMOVED)

        self._invalidate(group_id, [target_id, successor.user_id])
        logger.info(
            "User %s removed from group %s by %s; %s promoted to admin",
            target_id, group_id, actor_id, successor.user_id,
        )
        return MembershipResult(
            message=f"{MEMBER_REMOVED}. {successor.user_id} has been promoted to admin.",
            promoted_user_id=successor.user_id,
        )

    def update_member_role(self, actor_id: str, group_id: str, target_id: str, new_role: str) -> MembershipResult:
        if new_role not in ROLES:
            raise InvalidArgument(f"Role must be one of: {', '.join(ROLES)}")

        self._get_group(group_id)
        members = self._members(group_id, lock=True)
        by_user = {m.user_id: m for m in members}

        actor = by_user.get(actor_id)
        if actor is None or not actor.is_admin:
            raise PermissionDenied("Only group admins can change member roles")

        target = by_user.get(target_id)
        if target is None:
            raise NotFound("User is not a member of this group")

        if target.role == new_role:
            return MembershipResult(message=f"User is already a {new_role}", changed=False)

        if target.is_admin and new_role == ROLE_MEMBER:
            if sum(1 for m in members if m.is_admin) == 1:
                raise PermissionDenied(LAST_ADMIN_DEMOTION)

        target.role = new_role
        self.db.add(target)
        self.db.commit()

        # the cache holds only the membership boolean, which a role change leaves intact
        action = "promoted to" if new_role == ROLE_ADMIN else "demoted to"
        logger.info("User %s %s %s in group %s by %s", target_id, action, new_role, group_id, actor_id)
        return MembershipResult(message=f"Member {action} {new_role} successfully")
