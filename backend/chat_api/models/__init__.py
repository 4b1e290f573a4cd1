# backend/chat_api/models/__init__.py
from .user import User
from .group import Group
from .group_member import GroupMember, ROLE_ADMIN, ROLE_MEMBER, ROLES
from .message import Message

__all__ = ["User", "Group", "GroupMember", "Message", "ROLE_ADMIN", "ROLE_MEMBER", "ROLES"]
