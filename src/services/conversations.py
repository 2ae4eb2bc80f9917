# src/services/conversations.py
# -----------------------------------------------------------------------------
# Личная переписка двух друзей.
#
#   • group_id детерминирован по паре: "<min>-<max>". Строка conversations
#     создаётся лениво при первом сообщении.
#   • Сообщения неизменяемы, кроме read_at (ставит только получатель).
#   • reply_parent_id - слабая ссылка. Удалённый родитель отдаётся как
#     {"id": ..., "unavailable": true}, а не ошибкой.
#   • Удаление переписки - локальное: участник получает cleared_at и больше
#     не видит сообщения до этого момента. У второго участника всё остаётся.
#   • Обычные сообщения не пишутся в уведомления, только push.
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, and_, or_
from sqlalchemy.orm import Session

from src.db import dialect_insert
from src.models.conversation import Conversation
from src.models.conversation_hidden import ConversationHidden
from src.models.message import Message
from src.models.user import User
from src.services import notifications as notif
from src.services import push
from src.services.errors import NotAuthorized, NotFound, ValidationError
from src.services.friends import are_friends, is_blocked
from src.utils.clock import utc_now
from src.utils.pagination import PageResult, paginate
from src.utils.user import load_users_map, user_brief

log = logging.getLogger(__name__)

MAX_CONTENT = 2000
PREVIEW_LEN = 100
IMAGE_PREVIEW = "[image]"


def conversation_group_id(a: int, b: int) -> str:
    lo, hi = (a, b) if a < b else (b, a)
    return f"{lo}-{hi}"


def _preview(msg: Message) -> str:
    if msg.type == "image":
        return IMAGE_PREVIEW
    return (msg.content or "")[:PREVIEW_LEN]


def _get_conversation_for(db: Session, group_id: str, user_id: int) -> Conversation:
    conv = db.get(Conversation, group_id)
    if conv is None:
        raise NotFound("conversation_not_found", "Переписка не найдена")
    if not conv.has_participant(user_id):
        raise NotAuthorized("not_participant", "Вы не участник этой переписки")
    return conv


def _cleared_at(db: Session, group_id: str, user_id: int):
    hidden = db.get(ConversationHidden, (group_id, user_id))
    return hidden.cleared_at if hidden is not None else None


# =====================
# Отправка
# =====================

def _create_conversation(db: Session, group_id: str, a: int, b: int, now) -> Conversation:
    """
    Первое сообщение пары. Если собеседник параллельно создал ту же строку,
    ON CONFLICT DO NOTHING оставляет его строку, и мы продолжаем с ней.
    """
    lo, hi = (a, b) if a < b else (b, a)
    db.execute(
        dialect_insert(db)(Conversation.__table__)
        .values(group_id=group_id, user_min=lo, user_max=hi, last_message_at=now, created_at=now)
        .on_conflict_do_nothing(index_elements=["group_id"])
    )
    return db.get(Conversation, group_id)


def send_message(
    db: Session,
    sender_id: int,
    recipient_id: int,
    *,
    content: Optional[str] = None,
    image_ref: Optional[str] = None,
    reply_parent_id: Optional[int] = None,
) -> Message:
    recipient = db.get(User, recipient_id)
    if recipient is None:
        raise NotFound("user_not_found", "Пользователь не найден")
    if sender_id == recipient_id:
        raise ValidationError("invalid_target", "Нельзя написать самому себе")
    if is_blocked(db, sender_id, recipient_id):
        raise NotAuthorized("blocked", "Взаимодействие с пользователем недоступно")
    if not are_friends(db, sender_id, recipient_id):
        raise NotAuthorized("not_friends", "Писать можно только друзьям")

    content = (content or "").strip() or None
    image_ref = (image_ref or "").strip() or None
    if (content is None) == (image_ref is None):
        raise ValidationError("invalid_payload", "Нужен либо текст, либо картинка")
    if content is not None and len(content) > MAX_CONTENT:
        raise ValidationError("content_too_long", f"Сообщение длиннее {MAX_CONTENT} символов")

    group_id = conversation_group_id(sender_id, recipient_id)

    if reply_parent_id is not None:
        parent = db.get(Message, reply_parent_id)
        if parent is None:
            raise NotFound("reply_parent_not_found", "Сообщение для ответа не найдено")
        if parent.group_id != group_id:
            raise ValidationError("reply_other_conversation", "Нельзя ответить на сообщение из другой переписки")

    now = utc_now()
    conv = db.get(Conversation, group_id) or _create_conversation(db, group_id, sender_id, recipient_id, now)

    msg = Message(
        group_id=group_id,
        sender_id=sender_id,
        type="image" if image_ref else "text",
        content=content,
        image_ref=image_ref,
        reply_parent_id=reply_parent_id,
        created_at=now,
    )
    db.add(msg)
    db.flush()

    conv.last_message_id = msg.id
    conv.last_message_at = now
    conv.last_message_preview = _preview(msg)
    db.flush()

    sender = db.get(User, sender_id)
    push.queue_push(
        db,
        user=recipient,
        title=(sender.name if sender and sender.name else "New message"),
        body=_preview(msg),
        data={"type": "message", "group_id": group_id, "message_id": msg.id},
    )
    return msg


# =====================
# Чтение
# =====================

def parents_map(
    db: Session, group_id: str, messages: Iterable[Message], viewer_id: Optional[int] = None
) -> Dict[int, Message]:
    ids = {m.reply_parent_id for m in messages if m.reply_parent_id is not None}
    if not ids:
        return {}
    stmt = select(Message).where(Message.id.in_(ids), Message.group_id == group_id)
    # родитель, стёртый у зрителя через cleared_at, для него недоступен
    cleared_at = _cleared_at(db, group_id, viewer_id) if viewer_id is not None else None
    if cleared_at is not None:
        stmt = stmt.where(Message.created_at > cleared_at)
    rows = db.execute(stmt).scalars().all()
    return {m.id: m for m in rows}


def reply_preview(parent_id: Optional[int], parents: Dict[int, Message]) -> Optional[Dict[str, Any]]:
    if parent_id is None:
        return None
    parent = parents.get(parent_id)
    if parent is None:
        return {"id": parent_id, "unavailable": True}
    return {
        "id": parent.id,
        "unavailable": False,
        "sender_id": parent.sender_id,
        "type": parent.type,
        "content": _preview(parent),
    }


def message_to_dict(msg: Message, parents: Dict[int, Message]) -> Dict[str, Any]:
    return {
        "id": msg.id,
        "group_id": msg.group_id,
        "sender_id": msg.sender_id,
        "type": msg.type,
        "content": msg.content,
        "image_ref": msg.image_ref,
        "reply_parent_id": msg.reply_parent_id,
        "reply_parent": reply_preview(msg.reply_parent_id, parents),
        "created_at": msg.created_at,
        "read_at": msg.read_at,
    }


def list_messages(
    db: Session, group_id: str, viewer_id: int, *, limit: int, cursor: Optional[str] = None
) -> PageResult:
    """
    Сообщения переписки, новые сверху. Получатель, впервые увидевший
    сообщение, отмечает его прочитанным (повторно read_at не меняется).
    """
    _get_conversation_for(db, group_id, viewer_id)

    stmt = select(Message).where(Message.group_id == group_id)
    cleared_at = _cleared_at(db, group_id, viewer_id)
    if cleared_at is not None:
        stmt = stmt.where(Message.created_at > cleared_at)

    page = paginate(db, stmt, Message.created_at, Message.id, limit=limit, cursor=cursor)

    now = utc_now()
    for msg in page.items:
        if msg.sender_id != viewer_id and msg.read_at is None:
            msg.read_at = now
    db.flush()

    parents = parents_map(db, group_id, page.items, viewer_id)
    items = [message_to_dict(m, parents) for m in page.items]
    return PageResult(items=items, next_cursor=page.next_cursor, is_done=page.is_done)


def mark_read(db: Session, message_id: int, viewer_id: int) -> Message:
    msg = db.get(Message, message_id)
    if msg is None:
        raise NotFound("message_not_found", "Сообщение не найдено")
    _get_conversation_for(db, msg.group_id, viewer_id)
    if msg.sender_id == viewer_id:
        raise NotAuthorized("sender_cannot_read", "Отправитель не отмечает своё сообщение прочитанным")
    if msg.read_at is None:
        msg.read_at = utc_now()
        db.flush()
    return msg


def has_unread(db: Session, group_id: str, viewer_id: int) -> bool:
    stmt = select(Message.id).where(
        Message.group_id == group_id,
        Message.sender_id != viewer_id,
        Message.read_at.is_(None),
    )
    cleared_at = _cleared_at(db, group_id, viewer_id)
    if cleared_at is not None:
        stmt = stmt.where(Message.created_at > cleared_at)
    return db.execute(stmt.limit(1)).first() is not None


def list_conversations(db: Session, viewer_id: int, *, limit: int, cursor: Optional[str] = None) -> PageResult:
    """
    Диалоги пользователя по last_message_at (новые сверху). Переписка, удалённая
    у себя, возвращается в список только с новым сообщением после cleared_at.
    """
    stmt = (
        select(Conversation)
        .outerjoin(
            ConversationHidden,
            and_(ConversationHidden.group_id == Conversation.group_id, ConversationHidden.user_id == viewer_id),
        )
        .where(
            or_(Conversation.user_min == viewer_id, Conversation.user_max == viewer_id),
            or_(ConversationHidden.cleared_at.is_(None), Conversation.last_message_at > ConversationHidden.cleared_at),
        )
    )
    page = paginate(db, stmt, Conversation.last_message_at, Conversation.group_id, limit=limit, cursor=cursor)

    users = load_users_map(db, (c.other_id(viewer_id) for c in page.items))
    items: List[Dict[str, Any]] = []
    for conv in page.items:
        items.append({
            "group_id": conv.group_id,
            "other_user": user_brief(users.get(conv.other_id(viewer_id))),
            "last_message_at": conv.last_message_at,
            "last_message_preview": conv.last_message_preview,
            "has_unread": has_unread(db, conv.group_id, viewer_id),
        })
    return PageResult(items=items, next_cursor=page.next_cursor, is_done=page.is_done)


# =====================
# Удаление
# =====================

def delete_message(db: Session, message_id: int, actor_id: int) -> Optional[str]:
    """
    Жёсткое удаление отправителем. Ответы на него остаются (с заглушкой).
    Возвращает image_ref, чтобы роутер удалил файл уже после commit.
    """
    msg = db.get(Message, message_id)
    if msg is None:
        raise NotFound("message_not_found", "Сообщение не найдено")
    if msg.sender_id != actor_id:
        raise NotAuthorized("not_sender", "Удалить может только отправитель")

    image_ref = msg.image_ref
    group_id = msg.group_id
    db.delete(msg)
    db.flush()

    conv = db.get(Conversation, group_id)
    if conv is not None and conv.last_message_id == message_id:
        last = db.execute(
            select(Message)
            .where(Message.group_id == group_id)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(1)
        ).scalar_one_or_none()
        if last is not None:
            conv.last_message_id = last.id
            conv.last_message_at = last.created_at
            conv.last_message_preview = _preview(last)
        else:
            conv.last_message_id = None
            conv.last_message_preview = None
        db.flush()
    return image_ref


def delete_conversation(db: Session, group_id: str, actor_id: int) -> ConversationHidden:
    """
    Локальное удаление для actor: сообщения физически не удаляются,
    у второго участника переписка остаётся.
    """
    conv = _get_conversation_for(db, group_id, actor_id)
    now = utc_now()

    hidden = db.get(ConversationHidden, (group_id, actor_id))
    if hidden is None:
        hidden = ConversationHidden(group_id=group_id, user_id=actor_id, cleared_at=now)
        db.add(hidden)
    else:
        hidden.cleared_at = now
    db.flush()

    notif.emit(
        db,
        recipient_id=conv.other_id(actor_id),
        actor_id=actor_id,
        type=notif.CONVERSATION_DELETED,
        subject_ref=f"conversation:{group_id}",
    )
    log.info("conversations: %s cleared %s for self", actor_id, group_id)
    return hidden
