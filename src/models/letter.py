# src/models/letter.py
# -----------------------------------------------------------------------------
# МОДЕЛЬ: Letter - отложенное письмо другу.
# deliver_at = created_at + days_until_delivery (1..30 дней).
# Статус меняется только scheduled -> delivered, ровно один раз, фоновой задачей.
# -----------------------------------------------------------------------------

from __future__ import annotations

import enum
from sqlalchemy import Column, Integer, String, Text, ForeignKey, Enum, DateTime, Index, text, func

from ..db import Base


class LetterStatus(enum.Enum):
    scheduled = "scheduled"
    delivered = "delivered"


class Letter(Base):
    __tablename__ = "letters"

    id = Column(Integer, primary_key=True, index=True)
    sender_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    recipient_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    title = Column(String(100), nullable=False)
    content = Column(Text, nullable=False)

    status = Column(
        Enum(LetterStatus, name="letter_status"),
        nullable=False,
        default=LetterStatus.scheduled,
        server_default=text("'scheduled'"),
        comment="Статус письма: scheduled|delivered",
    )

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    deliver_at = Column(DateTime, nullable=False, comment="Когда письмо станет доступно получателю (UTC)")
    delivered_at = Column(DateTime, nullable=True, comment="Когда фактически доставлено (UTC)")

    __table_args__ = (
        Index("ix_letters_status_deliver_at", "status", "deliver_at"),
        Index("ix_letters_recipient_status_created", "recipient_id", "status", "created_at"),
        Index("ix_letters_sender_created", "sender_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Letter id={self.id} sender={self.sender_id} recipient={self.recipient_id} status={self.status}>"
