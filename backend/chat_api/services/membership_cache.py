"""
Group membership cache.

Two stores share one interface: ``MembershipCache`` keeps entries in the
process, ``RedisMembershipCache`` keeps them in Redis so that every worker
sees the same entries and every invalidation. ``REDIS_URL`` selects Redis;
without it the in-process store is used.
"""
import logging
import threading
import time
from typing import Callable, Dict, Iterable, Optional, Tuple

import redis

logger = logging.getLogger(__name__)

DEFAULT_TTL = 300
DEFAULT_MAX_ENTRIES = 10_000


def membership_key(user_id: str, group_id: str) -> str:
    return f"group:{group_id}:member:{user_id}"


class BaseMembershipCache:
    """Boolean "user is a member of group" facts with a TTL. Never the role."""

    default_ttl: int = DEFAULT_TTL

    def get(self, user_id: str, group_id: str) -> Optional[bool]:
        raise NotImplementedError

    def set(self, user_id: str, group_id: str, is_member: bool, ttl: Optional[int] = None) -> None:
        raise NotImplementedError

    def invalidate(self, user_id: str, group_id: str) -> None:
        raise NotImplementedError

    def invalidate_many(self, group_id: str, user_ids: Iterable[str]) -> None:
        """
        Drop the entries of every affected user.

        Best effort: a failed invalidation only leaves a stale entry until
        its TTL runs out, so errors are logged and never raised.
        """
        user_ids = list(user_ids)
        for user_id in user_ids:
            try:
                self.invalidate(user_id, group_id)
            except Exception:
                logger.warning("Cache invalidation failed for group %s user %s", group_id, user_id, exc_info=True)
        logger.debug("Invalidated %d memberships for group %s", len(user_ids), group_id)


class MembershipCache(BaseMembershipCache):
    """
    In-process TTL store.

    Expired entries are swept once the store outgrows ``max_entries``; if it
    is still too big after the sweep the oldest entries are dropped.
    """

    def __init__(
        self,
        default_ttl: int = DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic,
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ):
        self.default_ttl = default_ttl
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[str, Tuple[bool, float]] = {}
        self._lock = threading.RLock()

    def get(self, user_id: str, group_id: str) -> Optional[bool]:
        key = membership_key(user_id, group_id)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None

            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None

            return value

    def set(self, user_id: str, group_id: str, is_member: bool, ttl: Optional[int] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        key = membership_key(user_id, group_id)
        with self._lock:
            now = self._clock()
            # re-insert so dict order stays oldest-write first
            self._entries.pop(key, None)
            self._entries[key] = (bool(is_member), now + ttl)
            if len(self._entries) > self.max_entries:
                self._shrink(now)

    def _shrink(self, now: float) -> None:
        expired = [k for k, (_, expires_at) in self._entries.items() if now >= expires_at]
        for k in expired:
            del self._entries[k]

        overflow = len(self._entries) - self.max_entries
        if overflow > 0:
            for k in list(self._entries)[:overflow]:
                del self._entries[k]
        logger.debug("Membership cache sweep: %d expired, %d evicted", len(expired), max(overflow, 0))

    def invalidate(self, user_id: str, group_id: str) -> None:
        with self._lock:
            self._entries.pop(membership_key(user_id, group_id), None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class RedisMembershipCache(BaseMembershipCache):
    """
    Redis-backed store shared by every worker process.

    Values are stored as ``"1"`` / ``"0"`` with ``EX`` set to the TTL.
    Redis errors are logged and treated as a miss, so the caller falls
    back to the database.
    """

    def __init__(self, client: "redis.Redis", default_ttl: int = DEFAULT_TTL):
        self.client = client
        self.default_ttl = default_ttl

    @classmethod
    def from_url(cls, url: str, default_ttl: int = DEFAULT_TTL) -> "RedisMembershipCache":
        client = redis.Redis.from_url(url, decode_responses=True, socket_timeout=1.0)
        return cls(client, default_ttl=default_ttl)

    def get(self, user_id: str, group_id: str) -> Optional[bool]:
        key = membership_key(user_id, group_id)
        try:
            value = self.client.get(key)
        except redis.RedisError:
            logger.error("Cache GET error for key %s", key, exc_info=True)
            return None

        if value is None:
            return None
        if isinstance(value, bytes):
            value = value.decode()
        return value == "1"

    def set(self, user_id: str, group_id: str, is_member: bool, ttl: Optional[int] = None) -> None:
        key = membership_key(user_id, group_id)
        ttl = self.default_ttl if ttl is None else ttl
        try:
            self.client.set(key, "1" if is_member else "0", ex=ttl)
        except redis.RedisError:
            logger.error("Cache SET error for key %s", key, exc_info=True)

    def invalidate(self, user_id: str, group_id: str) -> None:
        self.client.delete(membership_key(user_id, group_id))

    def invalidate_many(self, group_id: str, user_ids: Iterable[str]) -> None:
        keys = [membership_key(user_id, group_id) for user_id in user_ids]
        if not keys:
            return
        try:
            self.client.delete(*keys)
        except redis.RedisError:
            logger.warning("Cache invalidation failed for group %s (%d keys)", group_id, len(keys), exc_info=True)
            return
        logger.debug("Invalidated %d memberships for group %s", len(keys), group_id)


_membership_cache: Optional[BaseMembershipCache] = None
_cache_lock = threading.Lock()


def build_membership_cache(redis_url: Optional[str], default_ttl: int = DEFAULT_TTL) -> BaseMembershipCache:
    if redis_url:
        logger.info("Membership cache: redis")
        return RedisMembershipCache.from_url(redis_url, default_ttl=default_ttl)
    logger.info("Membership cache: in-process")
    return MembershipCache(default_ttl=default_ttl)


def get_membership_cache() -> BaseMembershipCache:
    """Process-wide cache instance (FastAPI dependency)."""
    global _membership_cache
    if _membership_cache is None:
        from chat_api.core.config import settings

        with _cache_lock:
            if _membership_cache is None:
                _membership_cache = build_membership_cache(settings.REDIS_URL, settings.MEMBERSHIP_CACHE_TTL)
    return _membership_cache
