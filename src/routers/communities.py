# src/routers/communities.py
# Сообщества, заявки на вступление и обсуждения внутри сообщества.

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from src.db import get_db
from src.models.user import User
from src.schemas.common import Page, UserBrief
from src.schemas.community import (
    CommunityCreate,
    CommunityInfoOut,
    CommunityOut,
    CommunityUpdate,
    DiscussionCreate,
    DiscussionOut,
    JoinRequestIn,
    MembershipOut,
    ThreadCreate,
    ThreadOut,
)
from src.services import communities as svc
from src.services import discussions as disc_svc
from src.utils.pagination import PageResult
from src.utils.telegram_dep import get_current_telegram_user
from src.utils.user import load_users_map

router = APIRouter()


def _page(page: PageResult, items: list) -> dict:
    return {"items": items, "next_cursor": page.next_cursor, "is_done": page.is_done}


def _with_user(db: Session, page: PageResult, schema, field: str) -> dict:
    """Каждому элементу страницы подкладываем карточку его автора/участника."""
    users = load_users_map(db, (row.user_id for row in page.items))
    items = []
    for row in page.items:
        out = schema.model_validate(row)
        user = users.get(row.user_id)
        setattr(out, field, UserBrief.model_validate(user) if user is not None else None)
        items.append(out)
    return _page(page, items)


# =====================
# Сообщество
# =====================

@router.post("/", response_model=CommunityOut, status_code=201)
def create_community(
    payload: CommunityCreate,
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    community = svc.create_community(db, current_user.id, **payload.model_dump())
    db.commit()
    db.refresh(community)
    return community


@router.get("/joined", response_model=Page[CommunityOut])
def list_joined(
    limit: int = Query(20),
    cursor: Optional[str] = Query(None),
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    page = svc.list_joined(db, current_user.id, limit=limit, cursor=cursor)
    return _page(page, page.items)


@router.get("/owned", response_model=Page[CommunityOut])
def list_owned(
    limit: int = Query(20),
    cursor: Optional[str] = Query(None),
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    page = svc.list_owned(db, current_user.id, limit=limit, cursor=cursor)
    return _page(page, page.items)


@router.get("/{community_id}", response_model=CommunityInfoOut)
def get_community(
    community_id: int,
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    return svc.get_community_info(db, community_id, current_user.id)


@router.patch("/{community_id}", response_model=CommunityOut)
def update_community(
    community_id: int,
    payload: CommunityUpdate,
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    community = svc.update_community(db, community_id, current_user.id, **payload.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(community)
    return community


@router.delete("/{community_id}")
def delete_community(
    community_id: int,
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    svc.delete_community(db, community_id, current_user.id)
    db.commit()
    return {"ok": True}


# =====================
# Членство
# =====================

@router.post("/{community_id}/join", response_model=MembershipOut, status_code=201)
def request_to_join(
    community_id: int,
    payload: JoinRequestIn,
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    membership = svc.request_to_join(db, current_user.id, community_id, payload.message)
    db.commit()
    db.refresh(membership)
    return membership


@router.post("/{community_id}/leave")
def leave(
    community_id: int,
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    svc.leave(db, community_id, current_user.id)
    db.commit()
    return {"ok": True}


@router.get("/{community_id}/members", response_model=Page[MembershipOut])
def list_members(
    community_id: int,
    limit: int = Query(20),
    cursor: Optional[str] = Query(None),
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    page = svc.list_members(db, community_id, limit=limit, cursor=cursor)
    return _with_user(db, page, MembershipOut, "user")


@router.get("/{community_id}/requests", response_model=Page[MembershipOut])
def list_join_requests(
    community_id: int,
    limit: int = Query(20),
    cursor: Optional[str] = Query(None),
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    page = svc.list_join_requests(db, community_id, current_user.id, limit=limit, cursor=cursor)
    return _with_user(db, page, MembershipOut, "user")


@router.post("/requests/{membership_id}/accept", response_model=MembershipOut)
def accept_join(
    membership_id: int,
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    membership = svc.accept_join(db, membership_id, current_user.id)
    db.commit()
    db.refresh(membership)
    return membership


@router.post("/requests/{membership_id}/reject")
def reject_join(
    membership_id: int,
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    svc.reject_join(db, membership_id, current_user.id)
    db.commit()
    return {"ok": True}


@router.delete("/{community_id}/members/{user_id}")
def remove_member(
    community_id: int,
    user_id: int,
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    svc.remove_member(db, community_id, user_id, current_user.id)
    db.commit()
    return {"ok": True}


# =====================
# Обсуждения
# =====================

@router.post("/{community_id}/discussions", response_model=DiscussionOut, status_code=201)
def create_discussion(
    community_id: int,
    payload: DiscussionCreate,
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    discussion = disc_svc.create_discussion(db, community_id, current_user.id, **payload.model_dump())
    db.commit()
    db.refresh(discussion)
    return discussion


@router.get("/{community_id}/discussions", response_model=Page[DiscussionOut])
def list_discussions(
    community_id: int,
    limit: int = Query(20),
    cursor: Optional[str] = Query(None),
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    page = disc_svc.list_discussions(db, community_id, current_user.id, limit=limit, cursor=cursor)
    return _with_user(db, page, DiscussionOut, "author")


@router.delete("/discussions/{discussion_id}")
def delete_discussion(
    discussion_id: int,
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    disc_svc.delete_discussion(db, discussion_id, current_user.id)
    db.commit()
    return {"ok": True}


@router.post("/discussions/{discussion_id}/threads", response_model=ThreadOut, status_code=201)
def create_thread(
    discussion_id: int,
    payload: ThreadCreate,
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    thread = disc_svc.create_thread(db, discussion_id, current_user.id, content=payload.content, parent_id=payload.parent_id)
    db.commit()
    db.refresh(thread)
    return thread


@router.get("/discussions/{discussion_id}/threads", response_model=Page[ThreadOut])
def list_threads(
    discussion_id: int,
    limit: int = Query(20),
    cursor: Optional[str] = Query(None),
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    page = disc_svc.list_threads(db, discussion_id, current_user.id, limit=limit, cursor=cursor)
    return _with_user(db, page, ThreadOut, "author")


@router.delete("/discussions/threads/{thread_id}")
def delete_thread(
    thread_id: int,
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    disc_svc.delete_thread(db, thread_id, current_user.id)
    db.commit()
    return {"ok": True}
