# src/models/conversation.py
# Переписка двух пользователей. id - детерминированный "<min>-<max>",
# оба участника получают одну и ту же строку без таблицы соответствий.
# last_message_* - денормализация для сортировки списка диалогов.

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Index, CheckConstraint, func
from src.db import Base


class Conversation(Base):
    __tablename__ = "conversations"

    group_id = Column(String(64), primary_key=True)

    user_min = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    user_max = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    last_message_id = Column(Integer, nullable=True)
    last_message_at = Column(DateTime, nullable=False, server_default=func.now())
    last_message_preview = Column(String(120), nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint("user_min < user_max", name="ck_conversations_min_lt_max"),
        Index("ix_conversations_user_min_last", "user_min", "last_message_at"),
        Index("ix_conversations_user_max_last", "user_max", "last_message_at"),
    )

    def has_participant(self, user_id: int) -> bool:
        return user_id in (self.user_min, self.user_max)

    def other_id(self, viewer_id: int) -> int:
        return self.user_max if viewer_id == self.user_min else self.user_min

    def __repr__(self):
        return f"<Conversation(group_id={self.group_id}, last_message_at={self.last_message_at})>"
