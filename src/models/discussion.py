# src/models/discussion.py
# Обсуждения внутри сообщества и ответы (threads) на них.
# Удаляются каскадом вместе с сообществом.

from sqlalchemy import Column, Integer, String, Text, ForeignKey, DateTime, Index, func
from src.db import Base


class Discussion(Base):
    __tablename__ = "discussions"

    id = Column(Integer, primary_key=True, index=True)
    community_id = Column(Integer, ForeignKey("communities.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    title = Column(String(100), nullable=False)
    content = Column(Text, nullable=False)
    image_ref = Column(String(512), nullable=True)
    replies_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, server_default=func.now())

    __table_args__ = (
        Index("ix_discussions_community_created", "community_id", "created_at"),
    )


class DiscussionThread(Base):
    __tablename__ = "discussion_threads"

    id = Column(Integer, primary_key=True, index=True)
    discussion_id = Column(Integer, ForeignKey("discussions.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # Ответ на другой thread (слабая ссылка, без FK)
    parent_id = Column(Integer, nullable=True, index=True)
    content = Column(String(1000), nullable=False)

    created_at = Column(DateTime, nullable=False, server_default=func.now())

    __table_args__ = (
        Index("ix_discussion_threads_discussion_created", "discussion_id", "created_at"),
    )
