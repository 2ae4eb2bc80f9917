# src/routers/notifications.py
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from src.db import get_db
from src.models.user import User
from src.schemas.common import Page
from src.schemas.notification import CountOut, NotificationOut, UnreadOut
from src.services import notifications as svc
from src.utils.telegram_dep import get_current_telegram_user
from src.utils.user import load_users_map, user_brief

router = APIRouter()


@router.get("/", response_model=Page[NotificationOut])
def list_notifications(
    limit: int = Query(20),
    cursor: Optional[str] = Query(None),
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    """Лента уведомлений, новые сверху. Карточка актора собирается при чтении."""
    page = svc.list_notifications(db, current_user.id, limit=limit, cursor=cursor)
    actors = load_users_map(db, (n.actor_id for n in page.items))
    items = [
        NotificationOut(
            id=n.id,
            type=n.type,
            actor_id=n.actor_id,
            subject_ref=n.subject_ref,
            created_at=n.created_at,
            read_at=n.read_at,
            actor=user_brief(actors.get(n.actor_id)),
        )
        for n in page.items
    ]
    return {"items": items, "next_cursor": page.next_cursor, "is_done": page.is_done}


@router.get("/unread", response_model=UnreadOut)
def has_unread(
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    return {"has_unread": svc.has_unread(db, current_user.id)}


@router.post("/read-all", response_model=CountOut)
def mark_all_read(
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    count = svc.mark_all_read(db, current_user.id)
    db.commit()
    return {"count": count}


@router.delete("/", response_model=CountOut)
def delete_all(
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    count = svc.delete_all(db, current_user.id)
    db.commit()
    return {"count": count}
