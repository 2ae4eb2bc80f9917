# src/schemas/conversation.py
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel

from src.schemas.common import UserBrief


class MessageCreate(BaseModel):
    recipient_id: int
    content: Optional[str] = None
    image_ref: Optional[str] = None
    reply_parent_id: Optional[int] = None


class ReplyParentOut(BaseModel):
    """Родитель ответа. unavailable=True - сообщение удалено, остальные поля пустые."""
    id: int
    unavailable: bool
    sender_id: Optional[int] = None
    type: Optional[str] = None
    content: Optional[str] = None


class MessageOut(BaseModel):
    id: int
    group_id: str
    sender_id: int
    type: str
    content: Optional[str] = None
    image_ref: Optional[str] = None
    image_url: Optional[str] = None
    reply_parent_id: Optional[int] = None
    reply_parent: Optional[ReplyParentOut] = None
    created_at: datetime
    read_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TimelineItem(BaseModel):
    type: Literal["separator", "message"]
    at: Optional[datetime] = None
    label: Optional[str] = None
    message: Optional[MessageOut] = None


class MessagePage(BaseModel):
    items: List[MessageOut]
    next_cursor: Optional[str] = None
    is_done: bool
    # хронологический порядок с разделителями (только при ?timeline=1)
    timeline: Optional[List[TimelineItem]] = None


class ConversationOut(BaseModel):
    group_id: str
    other_user: Optional[UserBrief] = None
    last_message_at: datetime
    last_message_preview: Optional[str] = None
    has_unread: bool
