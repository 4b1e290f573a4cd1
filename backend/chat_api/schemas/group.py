from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from chat_api.schemas.common import CamelModel
from chat_api.security.sanitizer import InputSanitizer

_request_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra='forbid')


class GroupCreateRequest(CamelModel):
    model_config = _request_config

    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)
    member_ids: List[str] = Field(
        ...,
        min_length=1,
        description='Initial member UUIDs (at least one); the creator is added as admin automatically',
    )

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        return InputSanitizer.sanitize_name(v)

    @field_validator('description')
    @classmethod
    def validate_description(cls, v: Optional[str]) -> Optional[str]:
        return InputSanitizer.sanitize_string(v, max_length=2000, allow_newlines=True) if v is not None else v

    @field_validator('member_ids')
    @classmethod
    def validate_member_ids(cls, v: List[str]) -> List[str]:
        return InputSanitizer.validate_uuid_list(v)


class GroupUpdateRequest(CamelModel):
    model_config = _request_config

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        return InputSanitizer.sanitize_name(v) if v is not None else v


class AddMembersRequest(CamelModel):
    model_config = _request_config

    user_ids: List[str] = Field(..., min_length=1, description='User UUIDs to add as members')

    @field_validator('user_ids')
    @classmethod
    def validate_user_ids(cls, v: List[str]) -> List[str]:
        return InputSanitizer.validate_uuid_list(v)


class UpdateMemberRoleRequest(CamelModel):
    model_config = _request_config

    role: Literal['admin', 'member']


class GroupMemberOut(CamelModel):
    id: int
    user_id: str
    user_name: str
    user_phone: str
    role: str
    joined_at: datetime

    @classmethod
    def from_member(cls, m) -> "GroupMemberOut":
        return cls(
            id=m.id,
            user_id=m.user_id,
            user_name=m.user.name,
            user_phone=m.user.phone_number,
            role=m.role,
            joined_at=m.joined_at,
        )


class GroupOut(CamelModel):
    """Group summary (no member list)."""
    id: str
    name: str
    description: Optional[str] = None
    created_by_id: str
    created_by_name: str
    member_count: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_group(cls, group, member_count: int | None = None) -> "GroupOut":
        return cls(
            id=group.id,
            name=group.name,
            description=group.description,
            created_by_id=group.created_by_id,
            created_by_name=group.created_by.name,
            member_count=len(group.members) if member_count is None else member_count,
            created_at=group.created_at,
            updated_at=group.updated_at,
        )


class GroupDetailOut(GroupOut):
    members: List[GroupMemberOut]

    @classmethod
    def from_group(cls, group, member_count: int | None = None) -> "GroupDetailOut":
        summary = GroupOut.from_group(group, member_count)
        return cls(
            **summary.model_dump(),
            members=[GroupMemberOut.from_member(m) for m in group.members],
        )
