# src/schemas/community.py
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel

from src.schemas.common import UserBrief


class CommunityCreate(BaseModel):
    title: str
    description: str = ""
    rules: List[str] = []
    gender_option: Literal["all", "my_gender"] = "all"
    language: str = "en"
    banner_ref: Optional[str] = None


class CommunityUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    rules: Optional[List[str]] = None
    banner_ref: Optional[str] = None


class CommunityOut(BaseModel):
    id: int
    admin_id: int
    title: str
    description: str
    rules: List[str] = []
    language: str
    gender: str
    banner_ref: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class CommunityInfoOut(BaseModel):
    community: CommunityOut
    members_count: int
    is_admin: bool
    is_member: bool
    is_pending: bool


class JoinRequestIn(BaseModel):
    message: Optional[str] = None


class MembershipOut(BaseModel):
    id: int
    community_id: int
    user_id: int
    role: str
    request_message: Optional[str] = None
    created_at: datetime
    user: Optional[UserBrief] = None

    class Config:
        from_attributes = True


# --- Обсуждения ---

class DiscussionCreate(BaseModel):
    title: str
    content: str
    image_ref: Optional[str] = None


class DiscussionOut(BaseModel):
    id: int
    community_id: int
    user_id: int
    title: str
    content: str
    image_ref: Optional[str] = None
    replies_count: int
    created_at: datetime
    author: Optional[UserBrief] = None

    class Config:
        from_attributes = True


class ThreadCreate(BaseModel):
    content: str
    parent_id: Optional[int] = None


class ThreadOut(BaseModel):
    id: int
    discussion_id: int
    user_id: int
    parent_id: Optional[int] = None
    content: str
    created_at: datetime
    author: Optional[UserBrief] = None

    class Config:
        from_attributes = True
