# src/models/conversation_hidden.py
# МОДЕЛЬ: Персональное «удаление» переписки для конкретного участника.
# ЛОГИКА:
#   - Это НЕ удаление сообщений: у второго участника переписка остаётся целиком.
#   - cleared_at - момент удаления; сообщения с created_at <= cleared_at
#     этому участнику больше не показываются.
#   - Новое сообщение после cleared_at возвращает переписку в его список.
#   - PK составной (group_id, user_id) - одна запись на участника на переписку.

from __future__ import annotations

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, PrimaryKeyConstraint, Index

from ..db import Base


class ConversationHidden(Base):
    __tablename__ = "conversation_hidden"

    group_id = Column(
        String(64),
        ForeignKey("conversations.group_id", ondelete="CASCADE"),
        nullable=False,
        comment="Идентификатор переписки",
    )

    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        comment="Участник, который удалил переписку у себя",
    )

    cleared_at = Column(
        DateTime,
        nullable=False,
        comment="Момент удаления (UTC); всё, что раньше, скрыто",
    )

    __table_args__ = (
        PrimaryKeyConstraint("group_id", "user_id", name="pk_conversation_hidden"),
        Index("ix_conversation_hidden_user_id", "user_id"),
    )
