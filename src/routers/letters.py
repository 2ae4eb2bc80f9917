# src/routers/letters.py
# Отложенные письма. Получатель видит только доставленные письма,
# отправитель - все свои, в любом статусе.

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from src.db import get_db
from src.models.letter import Letter, LetterStatus
from src.models.user import User
from src.schemas.common import Page
from src.schemas.letter import LetterCreate, LetterOut
from src.services import letters as svc
from src.utils.pagination import PageResult
from src.utils.telegram_dep import get_current_telegram_user
from src.utils.user import load_users_map, user_brief

router = APIRouter()


def _err(code: str, message: str) -> dict:
    return {"code": code, "message": message}


def _letter_out(letter: Letter, users: dict) -> LetterOut:
    return LetterOut(
        id=letter.id,
        sender_id=letter.sender_id,
        recipient_id=letter.recipient_id,
        title=letter.title,
        content=letter.content,
        status=letter.status.value,
        created_at=letter.created_at,
        deliver_at=letter.deliver_at,
        delivered_at=letter.delivered_at,
        sender=user_brief(users.get(letter.sender_id)),
        recipient=user_brief(users.get(letter.recipient_id)),
    )


def _page(db: Session, page: PageResult) -> dict:
    ids = set()
    for letter in page.items:
        ids.update((letter.sender_id, letter.recipient_id))
    users = load_users_map(db, ids)
    return {
        "items": [_letter_out(letter, users) for letter in page.items],
        "next_cursor": page.next_cursor,
        "is_done": page.is_done,
    }


@router.post("/", response_model=LetterOut, status_code=201)
def schedule_letter(
    payload: LetterCreate,
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    letter = svc.schedule_letter(
        db,
        current_user.id,
        payload.recipient_id,
        title=payload.title,
        content=payload.content,
        days_until_delivery=payload.days_until_delivery,
    )
    db.commit()
    db.refresh(letter)
    return _letter_out(letter, load_users_map(db, (letter.sender_id, letter.recipient_id)))


@router.get("/received", response_model=Page[LetterOut])
def list_received(
    limit: int = Query(20),
    cursor: Optional[str] = Query(None),
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    return _page(db, svc.list_received(db, current_user.id, limit=limit, cursor=cursor))


@router.get("/sent", response_model=Page[LetterOut])
def list_sent(
    limit: int = Query(20),
    cursor: Optional[str] = Query(None),
    status: Optional[str] = Query(None, description="scheduled | delivered"),
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    status_filter = None
    if status:
        try:
            status_filter = LetterStatus(status)
        except ValueError:
            raise HTTPException(status_code=422, detail=_err("invalid_status", "status: scheduled | delivered"))
    return _page(db, svc.list_sent(db, current_user.id, limit=limit, cursor=cursor, status=status_filter))


@router.get("/{letter_id}", response_model=LetterOut)
def get_letter(
    letter_id: int,
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    letter = svc.get_letter(db, letter_id, current_user.id)
    return _letter_out(letter, load_users_map(db, (letter.sender_id, letter.recipient_id)))


@router.delete("/{letter_id}")
def delete_letter(
    letter_id: int,
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    svc.delete_letter(db, letter_id, current_user.id)
    db.commit()
    return {"ok": True}
