# src/routers/friends.py
# Друзья и заявки в друзья. Бизнес-правила - в src/services/friends.py,
# здесь только: текущий пользователь -> сервис -> commit -> схема.

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from src.db import get_db
from src.models.friend_request import FriendRequest
from src.models.user import User
from src.schemas.common import Page
from src.schemas.friend import FriendOut, FriendRequestCreate, FriendRequestOut, FriendRequestRespond
from src.services import friends as svc
from src.utils.pagination import PageResult
from src.utils.telegram_dep import get_current_telegram_user
from src.utils.user import load_users_map, user_brief

router = APIRouter()


def _requests_page(db: Session, page: PageResult) -> dict:
    ids = set()
    for r in page.items:
        ids.update((r.sender_id, r.receiver_id))
    users = load_users_map(db, ids)
    return {
        "items": [_request_out(r, users) for r in page.items],
        "next_cursor": page.next_cursor,
        "is_done": page.is_done,
    }


def _request_out(req: FriendRequest, users: dict) -> FriendRequestOut:
    return FriendRequestOut(
        id=req.id,
        sender_id=req.sender_id,
        receiver_id=req.receiver_id,
        message=req.message,
        created_at=req.created_at,
        sender=user_brief(users.get(req.sender_id)),
        receiver=user_brief(users.get(req.receiver_id)),
    )


@router.get("/", response_model=Page[FriendOut])
def list_friends(
    limit: int = Query(20),
    cursor: Optional[str] = Query(None),
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    page = svc.list_friends(db, current_user.id, limit=limit, cursor=cursor)
    users = load_users_map(db, (link.other_id(current_user.id) for link in page.items))
    items: List[FriendOut] = [
        FriendOut(id=link.id, user=user_brief(users.get(link.other_id(current_user.id))), created_at=link.created_at)
        for link in page.items
    ]
    return {"items": items, "next_cursor": page.next_cursor, "is_done": page.is_done}


@router.get("/requests/incoming", response_model=Page[FriendRequestOut])
def list_incoming(
    limit: int = Query(20),
    cursor: Optional[str] = Query(None),
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    return _requests_page(db, svc.list_incoming_requests(db, current_user.id, limit=limit, cursor=cursor))


@router.get("/requests/outgoing", response_model=Page[FriendRequestOut])
def list_outgoing(
    limit: int = Query(20),
    cursor: Optional[str] = Query(None),
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    return _requests_page(db, svc.list_outgoing_requests(db, current_user.id, limit=limit, cursor=cursor))


@router.post("/requests", response_model=FriendRequestOut, status_code=201)
def send_request(
    payload: FriendRequestCreate,
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    req = svc.send_request(db, current_user.id, payload.receiver_id, payload.message)
    db.commit()
    users = load_users_map(db, (req.sender_id, req.receiver_id))
    return _request_out(req, users)


@router.post("/requests/{request_id}/respond")
def respond_request(
    request_id: int,
    payload: FriendRequestRespond,
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    svc.respond_request(db, request_id, current_user.id, payload.accept)
    db.commit()
    return {"ok": True, "accepted": payload.accept}


@router.delete("/requests/{request_id}")
def cancel_request(
    request_id: int,
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    svc.cancel_request(db, request_id, current_user.id)
    db.commit()
    return {"ok": True}


@router.delete("/{user_id}")
def unfriend(
    user_id: int,
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    svc.unfriend(db, current_user.id, user_id)
    db.commit()
    return {"ok": True}
