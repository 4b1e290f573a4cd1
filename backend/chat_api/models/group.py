# backend/chat_api/models/group.py
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from chat_api.db.base import Base, new_id, utcnow


class Group(Base):
    __tablename__ = "groups"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # immutable after creation; the creator can never be removed from the group
    created_by_id: Mapped[str] = mapped_column(ForeignKey("users.id"), index=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    created_by = relationship("User", foreign_keys=[created_by_id])
    members = relationship(
        "GroupMember",
        back_populates="group",
        cascade="all,delete-orphan",
        order_by="[GroupMember.joined_at, GroupMember.id]",
    )
