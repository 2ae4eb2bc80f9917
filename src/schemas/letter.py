# src/schemas/letter.py
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from src.schemas.common import UserBrief


class LetterCreate(BaseModel):
    recipient_id: int
    title: str
    content: str
    days_until_delivery: int


class LetterOut(BaseModel):
    id: int
    sender_id: int
    recipient_id: int
    title: str
    content: str
    status: str
    created_at: datetime
    deliver_at: datetime
    delivered_at: Optional[datetime] = None
    sender: Optional[UserBrief] = None
    recipient: Optional[UserBrief] = None
