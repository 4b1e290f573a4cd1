from __future__ import annotations

from fastapi import Depends
from sqlalchemy.orm import Session

from chat_api.core.config import settings
from chat_api.db.session import get_db
from chat_api.services.access import AccessGate, build_membership_lookup
from chat_api.services.groups import GroupService
from chat_api.services.membership_cache import BaseMembershipCache, get_membership_cache
from chat_api.services.messages import MessageService


def get_access_gate(
    db: Session = Depends(get_db),
    cache: BaseMembershipCache = Depends(get_membership_cache),
) -> AccessGate:
    lookup = build_membership_lookup(
        db,
        cache,
        enabled=settings.MEMBERSHIP_CACHE_ENABLED,
        ttl=settings.MEMBERSHIP_CACHE_TTL,
    )
    return AccessGate(lookup)


def get_group_service(
    db: Session = Depends(get_db),
    gate: AccessGate = Depends(get_access_gate),
    cache: BaseMembershipCache = Depends(get_membership_cache),
) -> GroupService:
    return GroupService(db, gate, cache)


def get_message_service(
    db: Session = Depends(get_db),
    gate: AccessGate = Depends(get_access_gate),
) -> MessageService:
    return MessageService(db, gate)
