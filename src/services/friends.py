# src/services/friends.py
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select, or_, and_, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.models.blocked_user import BlockedUser
from src.models.friend import Friend
from src.models.friend_request import FriendRequest
from src.models.user import User
from src.services import notifications as notif
from src.services.errors import ConflictError, NotAuthorized, NotFound, ValidationError
from src.utils.clock import utc_now
from src.utils.pagination import PageResult, paginate

log = logging.getLogger(__name__)

MAX_REQUEST_MESSAGE = 300


def _sorted_pair(a: int, b: int) -> tuple[int, int]:
    return (a, b) if a < b else (b, a)


def get_friendship(db: Session, a: int, b: int) -> Optional[Friend]:
    lo, hi = _sorted_pair(a, b)
    return db.query(Friend).filter(Friend.user_min == lo, Friend.user_max == hi).first()


def are_friends(db: Session, a: int, b: int) -> bool:
    if a == b:
        return False
    return get_friendship(db, a, b) is not None


def is_blocked(db: Session, a: int, b: int) -> bool:
    """Блокировка в любую сторону."""
    row = (
        db.query(BlockedUser)
        .filter(
            or_(
                and_(BlockedUser.blocker_id == a, BlockedUser.blocked_id == b),
                and_(BlockedUser.blocker_id == b, BlockedUser.blocked_id == a),
            )
        )
        .first()
    )
    return row is not None


def _pending_between(db: Session, a: int, b: int) -> Optional[FriendRequest]:
    lo, hi = _sorted_pair(a, b)
    return db.query(FriendRequest).filter(FriendRequest.user_min == lo, FriendRequest.user_max == hi).first()


# =====================
# Заявки
# =====================

def send_request(db: Session, sender_id: int, receiver_id: int, message: Optional[str] = None) -> FriendRequest:
    """
    Отправить заявку. Проверки по порядку: получатель существует, не сам себе,
    нет блокировки, ещё не друзья, нет встречной/повторной заявки.
    """
    if db.get(User, receiver_id) is None:
        raise NotFound("user_not_found", "Пользователь не найден")
    if sender_id == receiver_id:
        raise ValidationError("invalid_target", "Нельзя отправить заявку самому себе")
    if is_blocked(db, sender_id, receiver_id):
        raise NotAuthorized("blocked", "Взаимодействие с пользователем недоступно")
    if are_friends(db, sender_id, receiver_id):
        raise ConflictError("already_friends", "Вы уже друзья")
    if _pending_between(db, sender_id, receiver_id) is not None:
        raise ConflictError("duplicate_pending", "Заявка уже отправлена")

    message = (message or "").strip() or None
    if message and len(message) > MAX_REQUEST_MESSAGE:
        raise ValidationError("message_too_long", f"Сообщение длиннее {MAX_REQUEST_MESSAGE} символов")

    lo, hi = _sorted_pair(sender_id, receiver_id)
    req = FriendRequest(
        sender_id=sender_id,
        receiver_id=receiver_id,
        user_min=lo,
        user_max=hi,
        message=message,
        created_at=utc_now(),
    )
    db.add(req)
    try:
        db.flush()
    except IntegrityError:
        # встречная заявка успела закоммититься между проверкой и вставкой (uq_friend_requests_pair)
        db.rollback()
        raise ConflictError("duplicate_pending", "Заявка уже отправлена")

    notif.emit(
        db,
        recipient_id=receiver_id,
        actor_id=sender_id,
        type=notif.FRIEND_REQUEST_SENT,
        subject_ref=f"friend_request:{req.id}",
    )
    return req


def _get_incoming(db: Session, request_id: int, actor_id: int) -> FriendRequest:
    req = db.get(FriendRequest, request_id)
    # строки нет -> заявка уже не pending (принята/отклонена/отозвана)
    if req is None:
        raise NotFound("request_not_found", "Заявка не найдена")
    if req.receiver_id != actor_id:
        raise NotAuthorized("not_receiver", "Ответить на заявку может только получатель")
    return req


def accept_request(db: Session, request_id: int, actor_id: int) -> Friend:
    req = _get_incoming(db, request_id, actor_id)
    sender_id, receiver_id = req.sender_id, req.receiver_id

    db.delete(req)
    db.flush()

    link = get_friendship(db, sender_id, receiver_id)
    if link is None:
        lo, hi = _sorted_pair(sender_id, receiver_id)
        link = Friend(user_min=lo, user_max=hi, created_at=utc_now())
        db.add(link)
        db.flush()

    notif.emit(
        db,
        recipient_id=sender_id,
        actor_id=receiver_id,
        type=notif.FRIEND_REQUEST_ACCEPTED,
        subject_ref=f"user:{receiver_id}",
    )
    log.info("friends: %s accepted request from %s", receiver_id, sender_id)
    return link


def reject_request(db: Session, request_id: int, actor_id: int) -> None:
    req = _get_incoming(db, request_id, actor_id)
    sender_id = req.sender_id

    db.delete(req)
    db.flush()

    notif.emit(
        db,
        recipient_id=sender_id,
        actor_id=actor_id,
        type=notif.FRIEND_REQUEST_REJECTED,
        subject_ref=f"user:{actor_id}",
    )


def respond_request(db: Session, request_id: int, actor_id: int, accept: bool) -> Optional[Friend]:
    if accept:
        return accept_request(db, request_id, actor_id)
    reject_request(db, request_id, actor_id)
    return None


def cancel_request(db: Session, request_id: int, actor_id: int) -> None:
    """Отправитель отзывает свою заявку. Без уведомления."""
    req = db.get(FriendRequest, request_id)
    if req is None:
        raise NotFound("request_not_found", "Заявка не найдена")
    if req.sender_id != actor_id:
        raise NotAuthorized("not_sender", "Отозвать заявку может только отправитель")
    db.delete(req)
    db.flush()


# =====================
# Дружба
# =====================

def unfriend(db: Session, actor_id: int, other_id: int) -> None:
    """
    Удаляет ребро дружбы (одна строка - сразу для обеих сторон).
    Переписка и письма не трогаются.
    """
    link = get_friendship(db, actor_id, other_id)
    if link is None:
        raise NotFound("not_friends", "Пользователь не в друзьях")
    db.delete(link)
    db.flush()

    notif.emit(
        db,
        recipient_id=other_id,
        actor_id=actor_id,
        type=notif.FRIEND_REMOVED,
        subject_ref=f"user:{actor_id}",
    )


def list_friends(db: Session, user_id: int, *, limit: int, cursor: Optional[str] = None) -> PageResult:
    stmt = select(Friend).where(or_(Friend.user_min == user_id, Friend.user_max == user_id))
    return paginate(db, stmt, Friend.created_at, Friend.id, limit=limit, cursor=cursor)


def list_incoming_requests(db: Session, user_id: int, *, limit: int, cursor: Optional[str] = None) -> PageResult:
    stmt = select(FriendRequest).where(FriendRequest.receiver_id == user_id)
    return paginate(db, stmt, FriendRequest.created_at, FriendRequest.id, limit=limit, cursor=cursor)


def list_outgoing_requests(db: Session, user_id: int, *, limit: int, cursor: Optional[str] = None) -> PageResult:
    stmt = select(FriendRequest).where(FriendRequest.sender_id == user_id)
    return paginate(db, stmt, FriendRequest.created_at, FriendRequest.id, limit=limit, cursor=cursor)


# =====================
# Блокировка
# =====================

def block_user(db: Session, actor_id: int, target_id: int) -> BlockedUser:
    """
    Блокирует target: снимает дружбу и висящие заявки в обе стороны.
    Повторная блокировка идемпотентна.
    """
    if actor_id == target_id:
        raise ValidationError("invalid_target", "Нельзя заблокировать самого себя")
    if db.get(User, target_id) is None:
        raise NotFound("user_not_found", "Пользователь не найден")

    existing = db.get(BlockedUser, (actor_id, target_id))
    if existing is not None:
        return existing

    lo, hi = _sorted_pair(actor_id, target_id)
    db.execute(
        delete(Friend)
        .where(Friend.user_min == lo, Friend.user_max == hi)
        .execution_options(synchronize_session="fetch")
    )
    db.execute(
        delete(FriendRequest)
        .where(FriendRequest.user_min == lo, FriendRequest.user_max == hi)
        .execution_options(synchronize_session="fetch")
    )

    row = BlockedUser(blocker_id=actor_id, blocked_id=target_id, created_at=utc_now())
    db.add(row)
    db.flush()

    notif.emit(
        db,
        recipient_id=target_id,
        actor_id=actor_id,
        type=notif.USER_BLOCKED,
        subject_ref=f"user:{actor_id}",
    )
    return row


def unblock_user(db: Session, actor_id: int, target_id: int) -> None:
    row = db.get(BlockedUser, (actor_id, target_id))
    if row is None:
        raise NotFound("not_blocked", "Пользователь не заблокирован")
    db.delete(row)
    db.flush()
