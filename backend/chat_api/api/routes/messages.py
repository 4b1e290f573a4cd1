from __future__ import annotations

from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from chat_api.api.deps import get_message_service
from chat_api.core.config import settings
from chat_api.core.security import get_current_user
from chat_api.models.user import User
from chat_api.schemas.message import (
    MessageCreateRequest,
    MessageOut,
    MessageUpdateRequest,
    PaginatedMessages,
)
from chat_api.services.messages import MessageService


router = APIRouter(prefix='/messages', tags=['messages'])


@router.post('', response_model=MessageOut, status_code=status.HTTP_201_CREATED)
def send_message(
    req: MessageCreateRequest,
    service: MessageService = Depends(get_message_service),
    current_user: User = Depends(get_current_user),
):
    """Send a direct or group message, optionally as a reply."""
    return service.send_message(
        current_user,
        content=req.content,
        receiver_id=req.receiver_id,
        group_id=req.group_id,
        reply_to_id=req.reply_to_id,
    )


@router.get('', response_model=PaginatedMessages)
def list_messages(
    cursor: Optional[str] = Query(default=None, description='Cursor from a previous page (nextCursor)'),
    limit: int = Query(default=settings.DEFAULT_PAGE_SIZE, description='Page size, clamped to 1-100'),
    sort: Literal['asc', 'desc'] = Query(default='desc'),
    service: MessageService = Depends(get_message_service),
    current_user: User = Depends(get_current_user),
):
    """Direct messages sent or received by the current user, cursor paginated."""
    page = service.list_messages(current_user.id, cursor=cursor, limit=limit, sort=sort)
    return PaginatedMessages.from_page(page)


@router.get('/{message_id}', response_model=MessageOut)
def get_message(
    message_id: str,
    service: MessageService = Depends(get_message_service),
    current_user: User = Depends(get_current_user),
):
    return service.get_message(current_user.id, message_id)


@router.patch('/{message_id}', response_model=MessageOut)
def update_message(
    message_id: str,
    req: MessageUpdateRequest,
    service: MessageService = Depends(get_message_service),
    current_user: User = Depends(get_current_user),
):
    """Edit message content (sender only)."""
    return service.update_message(current_user.id, message_id, req.content)


@router.delete('/{message_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_message(
    message_id: str,
    service: MessageService = Depends(get_message_service),
    current_user: User = Depends(get_current_user),
):
    """Delete a message (sender only). Replies are kept without their parent link."""
    service.delete_message(current_user.id, message_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get('/{message_id}/replies', response_model=List[MessageOut])
def list_replies(
    message_id: str,
    service: MessageService = Depends(get_message_service),
    current_user: User = Depends(get_current_user),
):
    """Replies to a message, oldest first."""
    return service.list_replies(current_user.id, message_id)
