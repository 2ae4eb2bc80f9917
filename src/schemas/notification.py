# src/schemas/notification.py
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from src.schemas.common import UserBrief


class NotificationOut(BaseModel):
    id: int
    type: str
    actor_id: int
    subject_ref: Optional[str] = None
    created_at: datetime
    read_at: Optional[datetime] = None
    actor: Optional[UserBrief] = None

    class Config:
        from_attributes = True


class UnreadOut(BaseModel):
    has_unread: bool


class CountOut(BaseModel):
    count: int
