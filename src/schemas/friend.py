# src/schemas/friend.py
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from src.schemas.common import UserBrief


class FriendRequestCreate(BaseModel):
    receiver_id: int
    message: Optional[str] = None


class FriendRequestRespond(BaseModel):
    accept: bool


class FriendRequestOut(BaseModel):
    """
    Висящая заявка. sender/receiver - карточки, собранные при чтении.
    Статус всегда pending: обработанные заявки удаляются.
    """
    id: int
    sender_id: int
    receiver_id: int
    message: Optional[str] = None
    status: str = "pending"
    created_at: datetime
    sender: Optional[UserBrief] = None
    receiver: Optional[UserBrief] = None

    class Config:
        from_attributes = True


class FriendOut(BaseModel):
    """Друг с точки зрения владельца списка: user - профиль друга."""
    id: int
    user: Optional[UserBrief] = None
    created_at: datetime
