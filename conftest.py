import itertools
import os
import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

ROOT = Path(__file__).resolve().parent
if str(ROOT / "backend") not in sys.path:
    sys.path.insert(0, str(ROOT / "backend"))

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "tests-secret-key")
os.environ.setdefault("ADMIN_API_KEY", "tests-admin-key")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from chat_api.db.base import Base
from chat_api.db.session import build_engine, get_db
from chat_api.main import create_app
from chat_api.models import Group, GroupMember, Message, User
from chat_api.services.access import AccessGate, CachedMembershipLookup, DirectMembershipLookup
from chat_api.services.groups import GroupService
from chat_api.services.membership_cache import MembershipCache, get_membership_cache
from chat_api.services.messages import MessageService


ADMIN_API_KEY = os.environ["ADMIN_API_KEY"]
BASE_TIME = datetime(2025, 11, 4, 10, 30, 0)

_counter = itertools.count(1)


@pytest.fixture()
def engine():
    eng = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def cache() -> MembershipCache:
    return MembershipCache()


@pytest.fixture(params=["cached", "direct"])
def gate(request, db, cache) -> AccessGate:
    """The gate must behave identically with and without the cache."""
    if request.param == "cached":
        return AccessGate(CachedMembershipLookup(db, cache))
    return AccessGate(DirectMembershipLookup(db))


@pytest.fixture()
def groups(db, gate, cache) -> GroupService:
    return GroupService(db, gate, cache)


@pytest.fixture()
def messages(db, gate) -> MessageService:
    return MessageService(db, gate)


@pytest.fixture()
def make_user(db):
    def _make_user(name: str | None = None, deleted: bool = False) -> User:
        n = next(_counter)
        user = User(
            name=name or f"User {n}",
            email=f"user{n}@example.com",
            phone_number=f"+1202555{n:04d}",
            password_hash="not-a-real-hash",
            is_deleted=deleted,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture()
def make_message(db):
    """Insert a message row directly, with full control over created_at and id."""

    def _make_message(
        sender: User,
        receiver: User | None = None,
        group: Group | None = None,
        created_at: datetime | None = None,
        message_id: str | None = None,
        content: str = "hello",
        reply_to_id: str | None = None,
    ) -> Message:
        kwargs = {}
        if message_id is not None:
            kwargs["id"] = message_id
        msg = Message(
            content=content,
            sender_id=sender.id,
            receiver_id=receiver.id if receiver else None,
            group_id=group.id if group else None,
            reply_to_id=reply_to_id,
            sender_name=sender.name,
            sender_phone=sender.phone_number,
            receiver_name=receiver.name if receiver else None,
            receiver_phone=receiver.phone_number if receiver else None,
            created_at=created_at or BASE_TIME,
            **kwargs,
        )
        db.add(msg)
        db.commit()
        db.refresh(msg)
        return msg

    return _make_message


def set_joined_at(db, group: Group, user: User, joined_at: datetime) -> None:
    member = db.query(GroupMember).filter_by(group_id=group.id, user_id=user.id).one()
    member.joined_at = joined_at
    db.commit()


def at(minutes: int) -> datetime:
    return BASE_TIME + timedelta(minutes=minutes)


@pytest.fixture()
def client(session_factory):
    app = create_app(create_tables=False)
    test_cache = MembershipCache()

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_membership_cache] = lambda: test_cache

    with TestClient(app) as c:
        yield c


def auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
