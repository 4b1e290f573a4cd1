import pytest
import redis

from chat_api.core.errors import PermissionDenied
from chat_api.models import ROLE_ADMIN
from chat_api.services.access import (
    ADMIN_REQUIRED,
    NOT_A_MEMBER,
    AccessGate,
    CachedMembershipLookup,
    DirectMembershipLookup,
    build_membership_lookup,
)
from chat_api.services.membership_cache import (
    MembershipCache,
    RedisMembershipCache,
    build_membership_cache,
    membership_key,
)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture()
def team(make_user, groups):
    admin, member, outsider = make_user(), make_user(), make_user()
    group = groups.create_group(admin.id, "Team", [member.id])
    return group, admin, member, outsider


# -- gate (runs with and without the cache) -------------------------------

def test_members_pass_and_outsiders_are_denied(team, gate):
    group, admin, member, outsider = team

    gate.require_access(admin.id, group.id)
    gate.require_access(member.id, group.id)
    with pytest.raises(PermissionDenied) as exc:
        gate.require_access(outsider.id, group.id)
    assert exc.value.message == NOT_A_MEMBER


def test_admin_requirement(team, gate):
    group, admin, member, _ = team

    gate.require_access(admin.id, group.id, require_admin=True)
    with pytest.raises(PermissionDenied) as exc:
        gate.require_access(member.id, group.id, require_admin=True)
    assert exc.value.message == ADMIN_REQUIRED


def test_message_read_and_write_rules(team, gate, make_message):
    group, admin, member, outsider = team
    dm = make_message(admin, receiver=member)
    group_msg = make_message(member, group=group)

    assert gate.can_read_message(member.id, dm)
    assert not gate.can_read_message(outsider.id, dm)
    assert gate.can_read_message(admin.id, group_msg)
    assert not gate.can_read_message(outsider.id, group_msg)

    assert gate.can_write_message(admin.id, dm)
    assert not gate.can_write_message(member.id, dm)
    assert not gate.can_write_message(admin.id, group_msg)


# -- cached lookup --------------------------------------------------------

def test_cache_miss_populates_entry(team, db, cache):
    group, _, member, outsider = team
    gate = AccessGate(CachedMembershipLookup(db, cache))

    assert gate.is_member(member.id, group.id) is True
    assert gate.is_member(outsider.id, group.id) is False
    assert cache.get(member.id, group.id) is True
    assert cache.get(outsider.id, group.id) is False


def test_cache_hit_is_trusted_for_plain_membership(team, db, cache):
    group, _, member, _ = team
    cache.set(member.id, group.id, False)
    gate = AccessGate(CachedMembershipLookup(db, cache))

    with pytest.raises(PermissionDenied):
        gate.require_access(member.id, group.id)


def test_admin_checks_ignore_cached_entries(team, db, cache):
    group, admin, member, _ = team
    cache.set(member.id, group.id, True)
    gate = AccessGate(CachedMembershipLookup(db, cache))

    with pytest.raises(PermissionDenied):
        gate.require_access(member.id, group.id, require_admin=True)
    gate.require_access(admin.id, group.id, require_admin=True)


def test_role_lookup_always_reads_the_store(team, db, cache):
    group, admin, _, _ = team
    lookup = CachedMembershipLookup(db, cache)
    cache.set(admin.id, group.id, False)

    assert lookup.get_role(admin.id, group.id) == ROLE_ADMIN
    assert cache.get(admin.id, group.id) is True


def test_lookup_factory(db, cache):
    assert isinstance(build_membership_lookup(db, cache), CachedMembershipLookup)
    assert isinstance(build_membership_lookup(db, cache, enabled=False), DirectMembershipLookup)
    assert isinstance(build_membership_lookup(db, None), DirectMembershipLookup)


# -- cache store ----------------------------------------------------------

def test_entries_expire_after_ttl():
    clock = FakeClock()
    cache = MembershipCache(default_ttl=300, clock=clock)
    cache.set("u1", "g1", True)

    clock.advance(299)
    assert cache.get("u1", "g1") is True

    clock.advance(1)
    assert cache.get("u1", "g1") is None
    assert len(cache) == 0


def test_explicit_ttl_overrides_default():
    clock = FakeClock()
    cache = MembershipCache(default_ttl=300, clock=clock)
    cache.set("u1", "g1", False, ttl=10)

    clock.advance(11)
    assert cache.get("u1", "g1") is None


def test_invalidate_many_only_touches_named_users():
    cache = MembershipCache()
    cache.set("u1", "g1", True)
    cache.set("u2", "g1", True)
    cache.set("u1", "g2", True)

    cache.invalidate_many("g1", ["u1", "u3"])

    assert cache.get("u1", "g1") is None
    assert cache.get("u2", "g1") is True
    assert cache.get("u1", "g2") is True


def test_invalidation_failures_are_logged_not_raised(caplog):
    class FlakyCache(MembershipCache):
        def invalidate(self, user_id, group_id):
            if user_id == "bad":
                raise RuntimeError("backend unavailable")
            super().invalidate(user_id, group_id)

    cache = FlakyCache()
    cache.set("good", "g1", True)

    cache.invalidate_many("g1", ["bad", "good"])

    assert cache.get("good", "g1") is None
    assert "Cache invalidation failed" in caplog.text


def test_key_format():
    assert membership_key("u1", "g1") == "group:g1:member:u1"


def test_expired_entries_are_swept_when_the_store_fills_up():
    clock = FakeClock()
    cache = MembershipCache(default_ttl=10, clock=clock, max_entries=3)
    cache.set("u1", "g1", True)
    cache.set("u2", "g1", True)
    clock.advance(11)

    cache.set("u3", "g1", True)
    cache.set("u4", "g1", True)

    assert len(cache) == 2
    assert cache.get("u3", "g1") is True


def test_store_never_outgrows_its_cap():
    cache = MembershipCache(max_entries=3)
    for n in range(10):
        cache.set(f"u{n}", "g1", True)

    assert len(cache) == 3
    assert cache.get("u0", "g1") is None
    assert cache.get("u9", "g1") is True


# -- redis store ----------------------------------------------------------

class FakeRedis:
    """Just enough of the redis-py client for the membership cache."""

    def __init__(self):
        self.data = {}
        self.expiry = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value, ex=None):
        self.data[key] = value
        self.expiry[key] = ex

    def delete(self, *keys):
        removed = 0
        for key in keys:
            removed += self.data.pop(key, None) is not None
        return removed


class DownRedis:
    def _refuse(self, *args, **kwargs):
        raise redis.ConnectionError("connection refused")

    get = set = delete = _refuse


def test_redis_store_round_trip():
    client = FakeRedis()
    cache = RedisMembershipCache(client, default_ttl=300)

    cache.set("u1", "g1", True)
    cache.set("u2", "g1", False, ttl=30)

    assert client.data == {"group:g1:member:u1": "1", "group:g1:member:u2": "0"}
    assert client.expiry == {"group:g1:member:u1": 300, "group:g1:member:u2": 30}
    assert cache.get("u1", "g1") is True
    assert cache.get("u2", "g1") is False
    assert cache.get("u3", "g1") is None

    cache.invalidate_many("g1", ["u1", "u2"])
    assert client.data == {}


def test_redis_outage_degrades_to_misses(caplog):
    cache = RedisMembershipCache(DownRedis())

    assert cache.get("u1", "g1") is None
    cache.set("u1", "g1", True)
    cache.invalidate_many("g1", ["u1"])

    assert "Cache GET error" in caplog.text
    assert "Cache invalidation failed" in caplog.text


def test_gate_falls_back_to_the_store_when_redis_is_down(team, db):
    group, _, member, outsider = team
    gate = AccessGate(CachedMembershipLookup(db, RedisMembershipCache(DownRedis())))

    gate.require_access(member.id, group.id)
    with pytest.raises(PermissionDenied):
        gate.require_access(outsider.id, group.id)


def test_store_selection():
    assert isinstance(build_membership_cache(None), MembershipCache)
    shared = build_membership_cache("redis://localhost:6379/0", default_ttl=60)
    assert isinstance(shared, RedisMembershipCache)
    assert shared.default_ttl == 60
