from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from chat_api.schemas.common import CamelModel
from chat_api.security.sanitizer import InputSanitizer


class MessageCreateRequest(CamelModel):
    """
    New direct or group message.

    Exactly one of receiverId / groupId; the service rejects both or
    neither with a 400.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra='forbid')

    content: str = Field(..., min_length=1, max_length=5000, description='Message content (max 5000 chars)')
    receiver_id: Optional[str] = Field(default=None, description='Receiver UUID for a direct message')
    group_id: Optional[str] = Field(default=None, description='Group UUID for a group message')
    reply_to_id: Optional[str] = Field(default=None, description='UUID of the message being replied to')

    @field_validator('content')
    @classmethod
    def validate_content(cls, v: str) -> str:
        return InputSanitizer.sanitize_content(v)

    @field_validator('receiver_id', 'group_id', 'reply_to_id')
    @classmethod
    def validate_ids(cls, v: Optional[str]) -> Optional[str]:
        return InputSanitizer.validate_uuid(v) if v is not None else v


class MessageUpdateRequest(CamelModel):
    """Only content is editable; sender, target and thread link are fixed."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra='forbid')

    content: Optional[str] = Field(default=None, max_length=5000)

    @field_validator('content')
    @classmethod
    def validate_content(cls, v: Optional[str]) -> Optional[str]:
        return InputSanitizer.sanitize_content(v) if v is not None else v


class MessageOut(CamelModel):
    id: str
    content: str
    sender_id: Optional[str] = None
    receiver_id: Optional[str] = None
    group_id: Optional[str] = None
    sender_name: str
    sender_phone: str
    receiver_name: Optional[str] = None
    receiver_phone: Optional[str] = None
    reply_to_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class PaginationMeta(CamelModel):
    count: int
    limit: int
    next_cursor: Optional[str] = None
    # taken from the first row of every non-empty page, including the first page
    prev_cursor: Optional[str] = None
    has_more: bool


class PaginatedMessages(CamelModel):
    items: List[MessageOut]
    meta: PaginationMeta

    @classmethod
    def from_page(cls, page) -> "PaginatedMessages":
        return cls(
            items=[MessageOut.model_validate(m) for m in page.items],
            meta=PaginationMeta(
                count=page.count,
                limit=page.limit,
                next_cursor=page.next_cursor,
                prev_cursor=page.prev_cursor,
                has_more=page.has_more,
            ),
        )
