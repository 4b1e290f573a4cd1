# backend/chat_api/crud/users.py
from __future__ import annotations

from typing import Iterable, List

from sqlalchemy import select
from sqlalchemy.orm import Session

from chat_api.core.security import hash_password
from chat_api.db.base import utcnow
from chat_api.models.user import User

DELETED_USER_NAME = "Deleted User"


def get_by_id(db: Session, user_id: str) -> User | None:
    return db.get(User, user_id)


def get_active(db: Session, user_id: str) -> User | None:
    user = db.get(User, user_id)
    if user is None or user.is_deleted:
        return None
    return user


def get_by_email(db: Session, email: str) -> User | None:
    stmt = select(User).where(User.email == email)
    return db.execute(stmt).scalar_one_or_none()


def get_by_phone(db: Session, phone_number: str) -> User | None:
    stmt = select(User).where(User.phone_number == phone_number)
    return db.execute(stmt).scalar_one_or_none()


def find_active_ids(db: Session, user_ids: Iterable[str]) -> set[str]:
    """Subset of ``user_ids`` that belong to existing, non-deleted users."""
    ids = set(user_ids)
    if not ids:
        return set()
    stmt = select(User.id).where(User.id.in_(ids), User.is_deleted.is_(False))
    return set(db.execute(stmt).scalars().all())


def list_all(db: Session) -> List[User]:
    stmt = select(User).order_by(User.created_at.desc())
    return list(db.execute(stmt).scalars().all())


def create_user(db: Session, name: str, email: str, phone_number: str, password: str) -> User:
    u = User(
        name=name,
        email=email,
        phone_number=phone_number,
        password_hash=hash_password(password),
    )

    db.add(u)
    db.commit()
    db.refresh(u)
    return u


def set_refresh_token_hash(db: Session, user: User, token_hash: str | None) -> None:
    user.refresh_token_hash = token_hash
    db.add(user)
    db.commit()


def soft_delete(db: Session, user: User) -> User:
    """
    Mark the account deleted and anonymise its profile.

    Email and phone get placeholders derived from the id so that the
    unique constraints hold and the originals can be registered again.
    Messages keep their own name/phone snapshots.
    """
    user.is_deleted = True
    user.deleted_at = utcnow()
    user.name = DELETED_USER_NAME
    user.email = f"deleted_{user.id}@deleted.com"
    user.phone_number = f"+000-{user.id}"
    user.refresh_token_hash = None

    db.add(user)
    db.commit()
    db.refresh(user)
    return user
