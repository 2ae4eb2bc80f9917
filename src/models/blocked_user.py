# src/models/blocked_user.py
# Блокировка: blocker_id запретил blocked_id любые взаимодействия.
# Проверяется в обе стороны (заявки в друзья, сообщения, письма).

from sqlalchemy import Column, Integer, ForeignKey, DateTime, PrimaryKeyConstraint, Index, func
from src.db import Base


class BlockedUser(Base):
    __tablename__ = "blocked_users"

    blocker_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    blocked_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    __table_args__ = (
        PrimaryKeyConstraint("blocker_id", "blocked_id", name="pk_blocked_users"),
        Index("ix_blocked_users_blocked_id", "blocked_id"),
    )
