# src/services/letters.py
# -----------------------------------------------------------------------------
# Отложенные письма.
#   • schedule_letter: только другу, 1..30 дней, уведомления в момент
#     отправки нет.
#   • deliver_letter: условный UPDATE ... WHERE status='scheduled' AND
#     deliver_at <= now. rowcount == 1 значит переход выполнил именно этот
#     вызов, и только он пишет уведомление. Проигравший гонку ничего не делает.
#   • Получатель не видит письмо (ни заголовок, ни текст), пока оно не доставлено.
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from src.models.letter import Letter, LetterStatus
from src.models.user import User
from src.services import notifications as notif
from src.services.errors import InvalidState, NotAuthorized, NotFound, ValidationError
from src.services.friends import are_friends, is_blocked
from src.utils.clock import utc_now
from src.utils.pagination import PageResult, paginate

log = logging.getLogger(__name__)

MIN_DAYS, MAX_DAYS = 1, 30
MAX_TITLE = 100
MIN_CONTENT, MAX_CONTENT = 100, 2000


def schedule_letter(
    db: Session,
    sender_id: int,
    recipient_id: int,
    *,
    title: str,
    content: str,
    days_until_delivery: int,
    now: Optional[datetime] = None,
) -> Letter:
    if db.get(User, recipient_id) is None:
        raise NotFound("user_not_found", "Пользователь не найден")
    if sender_id == recipient_id:
        raise ValidationError("invalid_target", "Нельзя отправить письмо самому себе")
    if is_blocked(db, sender_id, recipient_id):
        raise NotAuthorized("blocked", "Взаимодействие с пользователем недоступно")
    if not are_friends(db, sender_id, recipient_id):
        raise NotAuthorized("not_friends", "Письма можно отправлять только друзьям")

    title = (title or "").strip()
    content = (content or "").strip()
    if not title or len(title) > MAX_TITLE:
        raise ValidationError("invalid_title", f"Заголовок: от 1 до {MAX_TITLE} символов")
    if not (MIN_CONTENT <= len(content) <= MAX_CONTENT):
        raise ValidationError("invalid_content", f"Текст письма: от {MIN_CONTENT} до {MAX_CONTENT} символов")
    if (
        not isinstance(days_until_delivery, int)
        or isinstance(days_until_delivery, bool)
        or not (MIN_DAYS <= days_until_delivery <= MAX_DAYS)
    ):
        raise ValidationError("invalid_days", f"Срок доставки: от {MIN_DAYS} до {MAX_DAYS} дней")

    created_at = now or utc_now()
    letter = Letter(
        sender_id=sender_id,
        recipient_id=recipient_id,
        title=title,
        content=content,
        status=LetterStatus.scheduled,
        created_at=created_at,
        deliver_at=created_at + timedelta(days=days_until_delivery),
    )
    db.add(letter)
    db.flush()
    log.info("letters: %s scheduled letter %s to %s for %s", sender_id, letter.id, recipient_id, letter.deliver_at)
    return letter


def deliver_letter(db: Session, letter_id: int, now: Optional[datetime] = None) -> bool:
    """
    Compare-and-swap scheduled -> delivered. True, если переход сделал этот вызов.
    Не делает commit.
    """
    now = now or utc_now()
    res = db.execute(
        update(Letter)
        .where(
            Letter.id == letter_id,
            Letter.status == LetterStatus.scheduled,
            Letter.deliver_at <= now,
        )
        .values(status=LetterStatus.delivered, delivered_at=now)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        return False

    sender_id, recipient_id = db.execute(
        select(Letter.sender_id, Letter.recipient_id).where(Letter.id == letter_id)
    ).one()
    notif.emit(
        db,
        recipient_id=recipient_id,
        actor_id=sender_id,
        type=notif.LETTER_SCHEDULED,
        subject_ref=f"letter:{letter_id}",
        idempotency_key=f"letter_delivered:{letter_id}",
    )
    return True


def due_letter_ids(db: Session, now: datetime, limit: int = 500) -> list[int]:
    stmt = (
        select(Letter.id)
        .where(Letter.status == LetterStatus.scheduled, Letter.deliver_at <= now)
        .order_by(Letter.deliver_at.asc(), Letter.id.asc())
        .limit(limit)
    )
    return list(db.execute(stmt).scalars().all())


# =====================
# Чтение
# =====================

def list_received(db: Session, recipient_id: int, *, limit: int, cursor: Optional[str] = None) -> PageResult:
    """Входящие: только доставленные, по времени доставки (новые сверху)."""
    stmt = select(Letter).where(
        Letter.recipient_id == recipient_id,
        Letter.status == LetterStatus.delivered,
    )
    return paginate(db, stmt, Letter.delivered_at, Letter.id, limit=limit, cursor=cursor)


def list_sent(
    db: Session,
    sender_id: int,
    *,
    limit: int,
    cursor: Optional[str] = None,
    status: Optional[LetterStatus] = None,
) -> PageResult:
    stmt = select(Letter).where(Letter.sender_id == sender_id)
    if status is not None:
        stmt = stmt.where(Letter.status == status)
    return paginate(db, stmt, Letter.created_at, Letter.id, limit=limit, cursor=cursor)


def get_letter(db: Session, letter_id: int, viewer_id: int) -> Letter:
    letter = db.get(Letter, letter_id)
    if letter is None:
        raise NotFound("letter_not_found", "Письмо не найдено")
    if letter.sender_id == viewer_id:
        return letter
    # для получателя недоставленного письма ещё не существует
    if letter.recipient_id == viewer_id and letter.status == LetterStatus.delivered:
        return letter
    raise NotFound("letter_not_found", "Письмо не найдено")


def delete_letter(db: Session, letter_id: int, actor_id: int) -> None:
    """Удалить может любая сторона, но только доставленное письмо."""
    letter = get_letter(db, letter_id, actor_id)
    if letter.status != LetterStatus.delivered:
        raise InvalidState("letter_not_delivered", "Запланированное письмо нельзя удалить или отменить")
    db.delete(letter)
    db.flush()
