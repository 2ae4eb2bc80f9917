# src/schemas/user.py

from pydantic import BaseModel
from typing import Literal, Optional
from datetime import datetime


class UserOut(BaseModel):
    id: int
    telegram_id: int
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    name: Optional[str] = None
    photo_url: Optional[str] = None
    language_code: Optional[str] = None
    allows_write_to_pm: Optional[bool] = None
    gender: Optional[str] = None
    is_premium: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class UserUpdate(BaseModel):
    """PATCH /users/me - пользователь сам выставляет пол и разрешение на push."""
    gender: Optional[Literal["male", "female", "other"]] = None
    allows_write_to_pm: Optional[bool] = None
