from __future__ import annotations

import logging
from typing import List

from sqlalchemy import and_, or_, select, update
from sqlalchemy.orm import Session

from chat_api.core.config import settings
from chat_api.core.errors import InvalidArgument, NotFound, PermissionDenied
from chat_api.crud import users as users_crud
from chat_api.models.group import Group
from chat_api.models.message import Message
from chat_api.models.user import User
from chat_api.services.access import AccessGate
from chat_api.services.pagination import CursorPage, SortOrder, paginate

logger = logging.getLogger(__name__)


def _same_conversation(parent: Message, receiver_id: str | None, group_id: str | None, sender_id: str) -> bool:
    if parent.group_id is not None or group_id is not None:
        return parent.group_id == group_id
    return {parent.sender_id, parent.receiver_id} == {sender_id, receiver_id}


class MessageService:
    def __init__(self, db: Session, gate: AccessGate):
        self.db = db
        self.gate = gate

    def _get(self, message_id: str) -> Message:
        message = self.db.get(Message, message_id)
        if message is None:
            raise NotFound(f"Message with ID {message_id} not found")
        return message

    def _readable(self, user_id: str, message_id: str) -> Message:
        message = self._get(message_id)
        if not self.gate.can_read_message(user_id, message):
            raise PermissionDenied("You do not have access to this message")
        return message

    def _owned(self, user_id: str, message_id: str) -> Message:
        message = self._get(message_id)
        if not self.gate.can_write_message(user_id, message):
            raise PermissionDenied("Only the sender can modify this message")
        return message

    def send_message(
        self,
        sender: User,
        content: str,
        receiver_id: str | None = None,
        group_id: str | None = None,
        reply_to_id: str | None = None,
    ) -> Message:
        """
        Store a direct or group message.

        Exactly one of ``receiver_id`` and ``group_id`` must be given.
        Sender and receiver name/phone are copied onto the message so the
        history survives later account deletion.
        """
        if (receiver_id is None) == (group_id is None):
            raise InvalidArgument("Exactly one of receiverId or groupId must be provided")

        receiver = None
        if receiver_id is not None:
            receiver = users_crud.get_active(self.db, receiver_id)
            if receiver is None:
                raise InvalidArgument(f"Receiver with ID {receiver_id} not found")
        else:
            if self.db.get(Group, group_id) is None:
                raise NotFound(f"Group with ID {group_id} not found")
            self.gate.require_access(sender.id, group_id)

        if reply_to_id is not None:
            parent = self.db.get(Message, reply_to_id)
            # unreadable parents are reported exactly like missing ones
            if parent is None or not self.gate.can_read_message(sender.id, parent):
                raise InvalidArgument(f"Reply target message with ID {reply_to_id} not found")
            if not _same_conversation(parent, receiver_id, group_id, sender.id):
                raise InvalidArgument("Reply target belongs to a different conversation")

        msg = Message(
            content=content,
            sender_id=sender.id,
            receiver_id=receiver_id,
            group_id=group_id,
            reply_to_id=reply_to_id,
            sender_name=sender.name,
            sender_phone=sender.phone_number,
            receiver_name=receiver.name if receiver else None,
            receiver_phone=receiver.phone_number if receiver else None,
        )
        self.db.add(msg)
        self.db.commit()
        self.db.refresh(msg)
        return msg

    def get_message(self, user_id: str, message_id: str) -> Message:
        return self._readable(user_id, message_id)

    def update_message(self, user_id: str, message_id: str, content: str | None) -> Message:
        message = self._owned(user_id, message_id)
        if content is not None:
            message.content = content
            self.db.add(message)
            self.db.commit()
            self.db.refresh(message)
        return message

    def delete_message(self, user_id: str, message_id: str) -> None:
        """Hard delete; replies stay and lose their thread link."""
        message = self._owned(user_id, message_id)
        try:
            self.db.execute(
                update(Message)
                .where(Message.reply_to_id == message.id)
                .values(reply_to_id=None)
                .execution_options(synchronize_session="fetch")
            )
            self.db.delete(message)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info("Message %s deleted by %s", message_id, user_id)

    def list_replies(self, user_id: str, message_id: str) -> List[Message]:
        parent = self._readable(user_id, message_id)
        stmt = (
            select(Message)
            .where(Message.reply_to_id == parent.id)
            .order_by(Message.created_at.asc(), Message.id.asc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_messages(
        self,
        user_id: str,
        cursor: str | None = None,
        limit: int | None = None,
        sort: SortOrder = "desc",
    ) -> CursorPage:
        """Direct messages the user sent or received."""
        stmt = select(Message).where(
            and_(
                Message.group_id.is_(None),
                or_(Message.sender_id == user_id, Message.receiver_id == user_id),
            )
        )
        return paginate(
            self.db, stmt, Message,
            cursor=cursor, limit=limit, sort=sort, max_limit=settings.MAX_PAGE_SIZE,
        )

    def list_group_messages(
        self,
        user_id: str,
        group_id: str,
        cursor: str | None = None,
        limit: int | None = None,
        sort: SortOrder = "desc",
    ) -> CursorPage:
        if self.db.get(Group, group_id) is None:
            raise NotFound(f"Group with ID {group_id} not found")
        self.gate.require_access(user_id, group_id)

        stmt = select(Message).where(Message.group_id == group_id)
        return paginate(
            self.db, stmt, Message,
            cursor=cursor, limit=limit, sort=sort, max_limit=settings.MAX_PAGE_SIZE,
        )
