# src/routers/users.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from src.db import get_db
from src.models.user import User
from src.schemas.user import UserOut, UserUpdate
from src.services import friends as friends_svc
from src.utils.clock import utc_now
from src.utils.telegram_dep import get_current_telegram_user

router = APIRouter()


@router.get("/me", response_model=UserOut)
def get_me(current_user: User = Depends(get_current_telegram_user)):
    """Текущий пользователь по Telegram WebApp initData."""
    return current_user


@router.patch("/me", response_model=UserOut)
def update_me(
    payload: UserUpdate,
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    """Пол (нужен для сообществ с ограничением) и согласие на push."""
    data = payload.model_dump(exclude_unset=True)
    for field in ("gender", "allows_write_to_pm"):
        if field in data and data[field] is not None:
            setattr(current_user, field, data[field])
    current_user.updated_at = utc_now()
    db.commit()
    db.refresh(current_user)
    return current_user


@router.post("/{user_id}/block")
def block_user(
    user_id: int,
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    friends_svc.block_user(db, current_user.id, user_id)
    db.commit()
    return {"ok": True}


@router.delete("/{user_id}/block")
def unblock_user(
    user_id: int,
    current_user: User = Depends(get_current_telegram_user),
    db: Session = Depends(get_db),
):
    friends_svc.unblock_user(db, current_user.id, user_id)
    db.commit()
    return {"ok": True}
