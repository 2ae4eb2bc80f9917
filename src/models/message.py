# src/models/message.py
from sqlalchemy import Column, Integer, String, Text, DateTime, Enum, Index, func
from src.db import Base


MESSAGE_TYPES = ("text", "image")


class Message(Base):
    """
    Сообщение в переписке. Неизменяемо после создания, кроме read_at
    (ставит только получатель) и жёсткого удаления отправителем.
    reply_parent_id - слабая ссылка (без FK): родитель может быть удалён,
    тогда ответ показывается с заглушкой «сообщение недоступно».
    """
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(String(64), nullable=False)
    sender_id = Column(Integer, nullable=False, index=True)

    type = Column(Enum(*MESSAGE_TYPES, name="message_type"), nullable=False, default="text")
    content = Column(Text, nullable=True)
    image_ref = Column(String(512), nullable=True)

    reply_parent_id = Column(Integer, nullable=True, index=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    read_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_messages_group_created", "group_id", "created_at", "id"),
        Index("ix_messages_group_unread", "group_id", "read_at"),
    )

    def __repr__(self) -> str:
        return f"<Message id={self.id} group={self.group_id} sender={self.sender_id} type={self.type}>"
