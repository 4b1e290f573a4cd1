# backend/chat_api/models/group_member.py
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from chat_api.db.base import Base, utcnow

ROLE_ADMIN = "admin"
ROLE_MEMBER = "member"
ROLES = (ROLE_ADMIN, ROLE_MEMBER)


class GroupMember(Base):
    __tablename__ = "group_members"
    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="uq_group_members_group_user"),
    )

    # autoincrement id doubles as the seniority tie-breaker for equal joined_at
    id: Mapped[int] = mapped_column(primary_key=True)

    group_id: Mapped[str] = mapped_column(ForeignKey("groups.id", ondelete="CASCADE"), index=True, nullable=False)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), index=True, nullable=False)

    role: Mapped[str] = mapped_column(String(16), default=ROLE_MEMBER, nullable=False)
    joined_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    group = relationship("Group", back_populates="members")
    user = relationship("User", back_populates="memberships")

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN
