# src/schemas/post.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class PostCreate(BaseModel):
    content: str = ""
    image_refs: List[str] = []


class PostOut(BaseModel):
    id: int
    user_id: int
    content: str
    image_refs: List[str] = []
    reactions_count: int
    comments_count: int
    created_at: datetime

    class Config:
        from_attributes = True


class ReactionIn(BaseModel):
    emoji: str


class ReactionOut(BaseModel):
    """emoji = None: реакция снята."""
    post_id: int
    emoji: Optional[str] = None
    reactions_count: int


class CommentCreate(BaseModel):
    content: str
    reply_parent_id: Optional[int] = None


class CommentOut(BaseModel):
    id: int
    post_id: int
    user_id: int
    content: str
    reply_parent_id: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True
