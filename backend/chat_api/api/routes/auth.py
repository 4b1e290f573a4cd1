# backend/chat_api/api/routes/auth.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from chat_api.core.errors import Conflict
from chat_api.core.security import (
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    hash_password,
    verify_password,
)
from chat_api.crud import users as users_crud
from chat_api.db.session import get_db
from chat_api.models.user import User
from chat_api.schemas.auth import LoginIn, RefreshIn, RegisterIn, TokenOut, UserOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _issue_tokens(db: Session, user: User, include_user: bool = True) -> TokenOut:
    access_token = create_access_token(subject=user.id, extra={"email": user.email})
    refresh_token = create_refresh_token(subject=user.id)

    # only a hash is stored; issuing a new pair invalidates the previous refresh token
    users_crud.set_refresh_token_hash(db, user, hash_password(refresh_token))

    return TokenOut(
        access_token=access_token,
        refresh_token=refresh_token,
        user=UserOut.model_validate(user) if include_user else None,
    )


def _invalid_credentials(detail: str = "Invalid credentials") -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


@router.post("/register", response_model=TokenOut, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterIn, db: Session = Depends(get_db)):
    existing = users_crud.get_by_email(db, payload.email)
    if existing and not existing.is_deleted:
        raise Conflict("Email already in use")

    existing = users_crud.get_by_phone(db, payload.phone_number)
    if existing and not existing.is_deleted:
        raise Conflict("Phone number already in use")

    u = users_crud.create_user(db, payload.name, payload.email, payload.phone_number, payload.password)
    logger.info("Registered user %s", u.id)
    return _issue_tokens(db, u)


@router.post("/login", response_model=TokenOut)
def login(payload: LoginIn, db: Session = Depends(get_db)):
    u = users_crud.get_by_email(db, payload.email)
    if not u or u.is_deleted or not verify_password(payload.password, u.password_hash):
        raise _invalid_credentials()

    return _issue_tokens(db, u)


@router.post("/refresh", response_model=TokenOut, response_model_exclude_none=True)
def refresh(payload: RefreshIn, db: Session = Depends(get_db)):
    """Exchange a refresh token for a new token pair (the old refresh token stops working)."""
    claims = decode_refresh_token(payload.refresh_token)
    if not claims or not claims.get("sub"):
        raise _invalid_credentials("Invalid or expired refresh token")

    u = users_crud.get_by_id(db, claims["sub"])
    if (
        not u
        or u.is_deleted
        or not u.refresh_token_hash
        or not verify_password(payload.refresh_token, u.refresh_token_hash)
    ):
        raise _invalid_credentials("Invalid or expired refresh token")

    return _issue_tokens(db, u, include_user=False)
