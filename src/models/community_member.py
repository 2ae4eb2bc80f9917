# src/models/community_member.py
# Членство в сообществе + уникальность (community_id, user_id) + ровно один admin.
# role=pending - заявка на вступление, ждёт решения админа
# (accept -> member, reject -> строка удаляется).

from sqlalchemy import Column, Integer, String, ForeignKey, UniqueConstraint, DateTime, Enum, Index, text
from sqlalchemy.sql import func
from ..db import Base


MEMBER_ROLES = ("admin", "member", "pending")


class CommunityMember(Base):
    __tablename__ = "community_members"

    id = Column(Integer, primary_key=True, index=True)
    community_id = Column(Integer, ForeignKey("communities.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    role = Column(Enum(*MEMBER_ROLES, name="community_member_role"), nullable=False)
    request_message = Column(String(300), nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("community_id", "user_id", name="uq_community_members_community_user"),
        Index("ix_community_members_community_role", "community_id", "role", "created_at"),
        Index("ix_community_members_user_role", "user_id", "role", "created_at"),
        # Частичный уникальный индекс: не больше одного admin на сообщество
        Index(
            "uq_community_members_one_admin",
            "community_id",
            unique=True,
            postgresql_where=text("role = 'admin'"),
            sqlite_where=text("role = 'admin'"),
        ),
    )

    @property
    def is_approved(self) -> bool:
        return self.role in ("admin", "member")
