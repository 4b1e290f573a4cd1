from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from chat_api.schemas.common import CamelModel
from chat_api.security.sanitizer import InputSanitizer


class RegisterIn(BaseModel):
    """Registration request."""
    model_config = ConfigDict(extra='forbid', populate_by_name=True)

    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    phone_number: str = Field(
        alias='phoneNumber',
        pattern=r'^\+[1-9]\d{1,14}$',
        description='Phone number in E.164 format (e.g. +1234567890)',
    )
    password: str = Field(min_length=6, max_length=128, description='Password (min 6 characters)')

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        return InputSanitizer.sanitize_name(v)


class LoginIn(BaseModel):
    model_config = ConfigDict(extra='forbid')

    email: EmailStr
    password: str = Field(min_length=1, max_length=128)

    @field_validator('password')
    @classmethod
    def validate_password_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError('Password cannot be empty')
        return v


class RefreshIn(BaseModel):
    model_config = ConfigDict(extra='forbid')

    refresh_token: str = Field(min_length=1)


class UserOut(CamelModel):
    id: str
    name: str
    email: str
    phone_number: str
    created_at: datetime


class UserDetailOut(UserOut):
    is_deleted: bool
    updated_at: datetime
    deleted_at: Optional[datetime] = None


class TokenOut(BaseModel):
    access_token: str
    refresh_token: str
    user: Optional[UserOut] = None
