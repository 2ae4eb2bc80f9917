# src/services/notifications.py
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select, update, delete
from sqlalchemy.orm import Session

from src.db import dialect_insert
from src.models.notification import Notification, NOTIFICATION_TYPES
from src.models.user import User
from src.services import push
from src.utils.clock import utc_now
from src.utils.pagination import PageResult, paginate

log = logging.getLogger(__name__)

# Константы типов (используй в сервисах)
FRIEND_REQUEST_SENT = "friend_request_sent"
FRIEND_REQUEST_ACCEPTED = "friend_request_accepted"
FRIEND_REQUEST_REJECTED = "friend_request_rejected"
FRIEND_REMOVED = "friend_removed"
COMMUNITY_JOIN_REQUEST = "community_join_request"
POST_REACTION = "post_reaction"
POST_COMMENTED = "post_commented"
COMMENT_REPLIED = "comment_replied"
DISCUSSION_THREAD_REPLIED = "discussion_thread_replied"
LETTER_SCHEDULED = "letter_scheduled"  # доставка отложенного письма
GIFT_RECEIVED = "gift_received"
CONVERSATION_DELETED = "conversation_deleted"
USER_BLOCKED = "user_blocked"

# Частые типы: пока совпадающее уведомление не прочитано, повтор только
# сдвигает его время, а не добавляет строку (реакция/снятие/реакция).
COLLAPSIBLE_TYPES = {POST_REACTION}

PUSH_TEXTS = {
    FRIEND_REQUEST_SENT: ("New friend request", "{actor} wants to be your friend"),
    FRIEND_REQUEST_ACCEPTED: ("Friend request accepted", "{actor} accepted your friend request"),
    FRIEND_REQUEST_REJECTED: ("Friend request declined", "{actor} declined your friend request"),
    FRIEND_REMOVED: ("Friend removed", "{actor} removed you from friends"),
    COMMUNITY_JOIN_REQUEST: ("Join request", "{actor} wants to join your community"),
    POST_REACTION: ("New reaction", "{actor} reacted to your post"),
    POST_COMMENTED: ("New comment", "{actor} commented on your post"),
    COMMENT_REPLIED: ("New reply", "{actor} replied to your comment"),
    DISCUSSION_THREAD_REPLIED: ("New reply", "{actor} replied in a discussion"),
    LETTER_SCHEDULED: ("A letter has arrived", "Your letter from {actor} has been delivered"),
    GIFT_RECEIVED: ("New gift", "{actor} sent you a gift"),
    CONVERSATION_DELETED: ("Conversation deleted", "{actor} deleted your conversation"),
    USER_BLOCKED: ("Blocked", "{actor} blocked you"),
}


def _queue_alert(db: Session, notif: Notification) -> None:
    recipient = db.get(User, notif.recipient_id)
    actor = db.get(User, notif.actor_id)
    title, body = PUSH_TEXTS[notif.type]
    push.queue_push(
        db,
        user=recipient,
        title=title,
        body=body.format(actor=(actor.name if actor and actor.name else "Someone")),
        data={"type": notif.type, "subject_ref": notif.subject_ref, "notification_id": notif.id},
    )


def emit(
    db: Session,
    *,
    recipient_id: int,
    actor_id: int,
    type: str,
    subject_ref: Optional[str] = None,
    idempotency_key: Optional[str] = None,
) -> Optional[Notification]:
    """
    Единая точка записи уведомлений. Вызывается в той же транзакции, что и бизнес-операция.
    Не делает commit. Push ставится в исходящие и уйдёт только после commit.
    Возвращает None, если уведомлять некого (сам себе).
    """
    if type not in NOTIFICATION_TYPES:
        raise ValueError(f"unknown notification type: {type}")
    if recipient_id == actor_id:
        return None

    now = utc_now()

    if type in COLLAPSIBLE_TYPES:
        subject_filter = (
            Notification.subject_ref.is_(None) if subject_ref is None else Notification.subject_ref == subject_ref
        )
        existing = db.execute(
            select(Notification)
            .where(
                Notification.recipient_id == recipient_id,
                Notification.actor_id == actor_id,
                Notification.type == type,
                subject_filter,
                Notification.read_at.is_(None),
            )
            .order_by(Notification.id.desc())
            .limit(1)
        ).scalar_one_or_none()
        if existing is not None:
            existing.created_at = now
            db.flush()
            return existing

    payload = {
        "recipient_id": recipient_id,
        "actor_id": actor_id,
        "type": type,
        "subject_ref": subject_ref,
        "created_at": now,
        "idempotency_key": idempotency_key,
    }

    if idempotency_key:
        # ON CONFLICT DO NOTHING по уникальному ключу idempotency_key
        stmt = (
            dialect_insert(db)(Notification.__table__)
            .values(**payload)
            .on_conflict_do_nothing(index_elements=["idempotency_key"])
            .returning(Notification.__table__.c.id)
        )
        inserted_id = db.execute(stmt).scalar_one_or_none()
        if inserted_id is None:
            # уже записано ранее - вернём существующую, push повторно не шлём
            return db.execute(
                select(Notification).where(Notification.idempotency_key == idempotency_key)
            ).scalar_one_or_none()
        notif = db.get(Notification, inserted_id)
    else:
        notif = Notification(**payload)
        db.add(notif)
        db.flush()

    _queue_alert(db, notif)
    return notif


def list_notifications(db: Session, recipient_id: int, *, limit: int, cursor: Optional[str] = None) -> PageResult:
    stmt = select(Notification).where(Notification.recipient_id == recipient_id)
    return paginate(db, stmt, Notification.created_at, Notification.id, limit=limit, cursor=cursor)


def has_unread(db: Session, recipient_id: int) -> bool:
    row = db.execute(
        select(Notification.id)
        .where(Notification.recipient_id == recipient_id, Notification.read_at.is_(None))
        .limit(1)
    ).first()
    return row is not None


def mark_all_read(db: Session, recipient_id: int) -> int:
    """Идемпотентно: уже прочитанные не трогаем. Возвращает число помеченных."""
    res = db.execute(
        update(Notification)
        .where(Notification.recipient_id == recipient_id, Notification.read_at.is_(None))
        .values(read_at=utc_now())
        .execution_options(synchronize_session=False)
    )
    return res.rowcount or 0


def delete_all(db: Session, recipient_id: int) -> int:
    """Жёсткое удаление всех уведомлений получателя. Необратимо."""
    res = db.execute(
        delete(Notification)
        .where(Notification.recipient_id == recipient_id)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount or 0
