from __future__ import annotations

from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query, status

from chat_api.api.deps import get_group_service, get_message_service
from chat_api.core.config import settings
from chat_api.core.security import get_current_user
from chat_api.models.user import User
from chat_api.schemas.common import ConfirmationOut
from chat_api.schemas.group import (
    AddMembersRequest,
    GroupCreateRequest,
    GroupDetailOut,
    GroupOut,
    GroupUpdateRequest,
    UpdateMemberRoleRequest,
)
from chat_api.schemas.message import PaginatedMessages
from chat_api.services.groups import GroupService
from chat_api.services.messages import MessageService


router = APIRouter(prefix='/groups', tags=['groups'])


@router.post('', response_model=GroupDetailOut, status_code=status.HTTP_201_CREATED)
def create_group(
    req: GroupCreateRequest,
    service: GroupService = Depends(get_group_service),
    current_user: User = Depends(get_current_user),
):
    """Create a group; the creator joins as admin."""
    group = service.create_group(
        current_user.id,
        name=req.name,
        description=req.description,
        member_ids=req.member_ids,
    )
    return GroupDetailOut.from_group(group)


@router.get('', response_model=List[GroupOut])
def list_groups(
    service: GroupService = Depends(get_group_service),
    current_user: User = Depends(get_current_user),
):
    """Groups the current user belongs to (summary only, no member list)."""
    return [
        GroupOut.from_group(group, member_count=count)
        for group, count in service.list_groups(current_user.id)
    ]


@router.get('/{group_id}', response_model=GroupDetailOut)
def get_group(
    group_id: str,
    service: GroupService = Depends(get_group_service),
    current_user: User = Depends(get_current_user),
):
    return GroupDetailOut.from_group(service.get_group(current_user.id, group_id))


@router.patch('/{group_id}', response_model=GroupDetailOut)
def update_group(
    group_id: str,
    req: GroupUpdateRequest,
    service: GroupService = Depends(get_group_service),
    current_user: User = Depends(get_current_user),
):
    """Rename or re-describe a group (admins only)."""
    group = service.update_group(current_user.id, group_id, name=req.name, description=req.description)
    return GroupDetailOut.from_group(group)


@router.post('/{group_id}/members', response_model=GroupDetailOut)
def add_members(
    group_id: str,
    req: AddMembersRequest,
    service: GroupService = Depends(get_group_service),
    current_user: User = Depends(get_current_user),
):
    """Add members (admins only). All or nothing: any existing member aborts the batch with 409."""
    group = service.add_members(current_user.id, group_id, req.user_ids)
    return GroupDetailOut.from_group(group)


@router.delete('/{group_id}/members/{user_id}', response_model=ConfirmationOut)
def remove_member(
    group_id: str,
    user_id: str,
    service: GroupService = Depends(get_group_service),
    current_user: User = Depends(get_current_user),
):
    """
    Remove a member or leave the group.

    Removing the last admin promotes the longest-standing member; the
    creator can never be removed.
    """
    result = service.remove_member(current_user.id, group_id, user_id)
    return ConfirmationOut(message=result.message)


@router.patch('/{group_id}/members/{user_id}/role', response_model=ConfirmationOut)
def update_member_role(
    group_id: str,
    user_id: str,
    req: UpdateMemberRoleRequest,
    service: GroupService = Depends(get_group_service),
    current_user: User = Depends(get_current_user),
):
    result = service.update_member_role(current_user.id, group_id, user_id, req.role)
    return ConfirmationOut(message=result.message)


@router.get('/{group_id}/messages', response_model=PaginatedMessages)
def list_group_messages(
    group_id: str,
    cursor: Optional[str] = Query(default=None),
    limit: int = Query(default=settings.DEFAULT_PAGE_SIZE),
    sort: Literal['asc', 'desc'] = Query(default='desc'),
    service: MessageService = Depends(get_message_service),
    current_user: User = Depends(get_current_user),
):
    """Group feed, cursor paginated. Members only."""
    page = service.list_group_messages(current_user.id, group_id, cursor=cursor, limit=limit, sort=sort)
    return PaginatedMessages.from_page(page)
