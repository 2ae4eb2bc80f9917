# src/models/notification.py
from sqlalchemy import Column, Integer, String, DateTime, Enum, Index, UniqueConstraint, func
from src.db import Base


NOTIFICATION_TYPES = (
    "friend_request_sent",
    "friend_request_accepted",
    "friend_request_rejected",
    "friend_removed",
    "community_join_request",
    "post_reaction",
    "post_commented",
    "comment_replied",
    "discussion_thread_replied",
    "letter_scheduled",
    "gift_received",
    "conversation_deleted",
    "user_blocked",
)


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)

    # кому адресовано
    recipient_id = Column(Integer, nullable=False)

    # кто совершил действие
    actor_id = Column(Integer, nullable=False)

    # тип уведомления (закрытый список)
    type = Column(Enum(*NOTIFICATION_TYPES, name="notification_type"), nullable=False)

    # к чему относится: "post:12", "letter:5", "community:3" - может быть NULL
    subject_ref = Column(String(64), nullable=True)

    # для дедупликации обновляется при повторе, поэтому это и ключ сортировки ленты
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    read_at = Column(DateTime, nullable=True)

    # идемпотентный ключ, чтобы не записывать дубль при ретраях/гонках
    idempotency_key = Column(String(64), nullable=True)

    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_notifications_idempotency_key"),
        Index("ix_notifications_recipient_created", "recipient_id", "created_at", "id"),
        Index("ix_notifications_recipient_unread", "recipient_id", "read_at"),
    )

    def __repr__(self) -> str:
        return f"<Notification id={self.id} type={self.type} actor={self.actor_id} recipient={self.recipient_id}>"
