# src/models/friend.py
from sqlalchemy import (
    Column, Integer, ForeignKey, DateTime,
    UniqueConstraint, func, Index, CheckConstraint
)
from src.db import Base


class Friend(Base):
    """
    Каноническая модель дружбы: одна строка на пару пользователей.
    Пара хранится как (user_min, user_max) с инвариантом user_min < user_max.
    Два индекса (по user_min и по user_max) дают поиск за O(1) с любой стороны,
    удаление строки снимает связь сразу для обоих.
    """
    __tablename__ = "friends"

    id = Column(Integer, primary_key=True, index=True)

    user_min = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    user_max = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    created_at = Column(DateTime, nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("user_min", "user_max", name="uq_friend_pair"),
        CheckConstraint("user_min < user_max", name="ck_friend_min_lt_max"),
        Index("ix_friends_user_min_created", "user_min", "created_at"),
        Index("ix_friends_user_max_created", "user_max", "created_at"),
    )

    def other_id(self, viewer_id: int) -> int:
        """id «второй стороны» дружбы относительно viewer_id."""
        return self.user_max if viewer_id == self.user_min else self.user_min

    def __repr__(self):
        return f"<Friend(user_min={self.user_min}, user_max={self.user_max})>"
