from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from chat_api.core.errors import NotFound, PermissionDenied
from chat_api.core.security import get_current_user, require_admin_api_key
from chat_api.crud import users as users_crud
from chat_api.db.session import get_db
from chat_api.models.user import User
from chat_api.schemas.auth import UserDetailOut, UserOut
from chat_api.schemas.common import ConfirmationOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=List[UserDetailOut], dependencies=[Depends(require_admin_api_key)])
def list_all_users(db: Session = Depends(get_db)):
    """All accounts, soft-deleted ones included. Requires X-API-Key."""
    return users_crud.list_all(db)


@router.get("/me", response_model=UserOut)
def get_me(current_user: User = Depends(get_current_user)):
    return current_user


@router.get("/{user_id}", response_model=UserOut)
def get_user(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    user = users_crud.get_active(db, user_id)
    if user is None:
        raise NotFound(f"User with ID {user_id} not found")
    return user


@router.delete("/{user_id}", response_model=ConfirmationOut)
def delete_account(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Soft delete the caller's own account.

    The profile is anonymised; messages keep the name/phone captured when
    they were sent.
    """
    if user_id != current_user.id:
        raise PermissionDenied("You can only delete your own account")

    users_crud.soft_delete(db, current_user)
    logger.info("User %s deleted their account", user_id)
    return ConfirmationOut(message="Account successfully deleted. Your message history has been preserved.")
