# src/models/friend_request.py
# Заявка в друзья. Строка живёт только пока заявка в статусе pending:
# accept/reject удаляют её (истории отклонённых нет, повторная заявка возможна сразу).

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Index, UniqueConstraint, CheckConstraint, func
from src.db import Base


class FriendRequest(Base):
    __tablename__ = "friend_requests"

    id = Column(Integer, primary_key=True, index=True)
    sender_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    receiver_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    # Каноническая пара - не больше одной pending-заявки на неупорядоченную пару
    user_min = Column(Integer, nullable=False)
    user_max = Column(Integer, nullable=False)

    message = Column(String(300), nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("user_min", "user_max", name="uq_friend_requests_pair"),
        CheckConstraint("sender_id <> receiver_id", name="ck_friend_requests_not_self"),
        Index("ix_friend_requests_receiver_created", "receiver_id", "created_at"),
        Index("ix_friend_requests_sender_created", "sender_id", "created_at"),
    )

    @property
    def status(self) -> str:
        return "pending"

    def __repr__(self):
        return f"<FriendRequest(id={self.id}, sender={self.sender_id}, receiver={self.receiver_id})>"
