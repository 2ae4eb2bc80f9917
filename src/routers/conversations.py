# src/routers/conversations.py
# Личная переписка. Файл картинки удаляется только после commit удаления сообщения.

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from src.db import get_db
from src.models.user import User
from src.schemas.common import Page
from src.schemas.conversation import ConversationOut, MessageCreate, MessageOut, MessagePage
from src.services import conversations as svc
from src.utils.media import IMAGE_KINDS, delete_if_local, ref_to_url
from src.utils.telegram_dep import get_current_telegram_user
from src.utils.timeline import build_timeline

router = APIRouter()


def _message_out(data: dict, request: Request) -> MessageOut:
    return MessageOut(**data, image_url=ref_to_url(data.get("image_ref"), request))


@router.get("/", response_model=Page[ConversationOut])
def list_conversations(
    limit: int = Query(20),
    cursor: Optional[str] = Query(None),
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    page = svc.list_conversations(db, current_user.id, limit=limit, cursor=cursor)
    return {"items": page.items, "next_cursor": page.next_cursor, "is_done": page.is_done}


@router.post("/messages", response_model=MessageOut, status_code=201)
def send_message(
    payload: MessageCreate,
    request: Request,
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    msg = svc.send_message(
        db,
        current_user.id,
        payload.recipient_id,
        content=payload.content,
        image_ref=payload.image_ref,
        reply_parent_id=payload.reply_parent_id,
    )
    parents = svc.parents_map(db, msg.group_id, [msg], current_user.id)
    data = svc.message_to_dict(msg, parents)
    db.commit()
    return _message_out(data, request)


@router.get("/{group_id}/messages", response_model=MessagePage)
def list_messages(
    group_id: str,
    request: Request,
    limit: int = Query(20),
    cursor: Optional[str] = Query(None),
    timeline: bool = Query(False),
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    """
    Новые сверху. Чтение отмечает входящие сообщения прочитанными (commit здесь же).
    ?timeline=1 - дополнительно хронологическая лента с разделителями по времени.
    """
    page = svc.list_messages(db, group_id, current_user.id, limit=limit, cursor=cursor)
    db.commit()

    items = [_message_out(m, request) for m in page.items]
    result = {"items": items, "next_cursor": page.next_cursor, "is_done": page.is_done}
    if timeline:
        result["timeline"] = build_timeline(list(reversed(items)))
    return result


@router.post("/messages/{message_id}/read", response_model=MessageOut)
def mark_read(
    message_id: int,
    request: Request,
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    msg = svc.mark_read(db, message_id, current_user.id)
    data = svc.message_to_dict(msg, svc.parents_map(db, msg.group_id, [msg], current_user.id))
    db.commit()
    return _message_out(data, request)


@router.delete("/messages/{message_id}")
def delete_message(
    message_id: int,
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    image_ref = svc.delete_message(db, message_id, current_user.id)
    db.commit()
    if image_ref:
        delete_if_local(image_ref, allowed_subdirs=(IMAGE_KINDS["chat"],))
    return {"ok": True}


@router.delete("/{group_id}")
def delete_conversation(
    group_id: str,
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    """Удаляет переписку только у себя: у собеседника сообщения остаются."""
    svc.delete_conversation(db, group_id, current_user.id)
    db.commit()
    return {"ok": True}
