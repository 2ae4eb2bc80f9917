# src/schemas/common.py
# Общие схемы: страница курсорной пагинации и краткая карточка пользователя.

from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    items: List[T]
    next_cursor: Optional[str] = None
    is_done: bool


class UserBrief(BaseModel):
    id: int
    name: Optional[str] = None
    photo_url: Optional[str] = None
    is_premium: bool = False

    class Config:
        from_attributes = True
