# src/utils/telegram_dep.py
"""
Текущий пользователь по Telegram WebApp initData.

initData ищется в JSON-теле ("initData"), в заголовке x-telegram-initdata
или в ?init_data=. Первый вход создаёт пользователя, последующие лениво
обновляют профиль (имя, аватар, язык, премиум). gender здесь не трогаем:
его выставляет сам пользователь через PATCH /api/users/me.
"""

import os
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from src.db import get_db
from src.models.user import User
from src.utils.clock import utc_now
from src.utils.user import get_display_name
from telegram_webapp_auth.auth import TelegramAuthenticator, generate_secret_key

TELEGRAM_BOT_TOKEN = os.environ.get("TELEGRAM_BOT_TOKEN")
if not TELEGRAM_BOT_TOKEN:
    raise RuntimeError("TELEGRAM_BOT_TOKEN is not set")

authenticator = TelegramAuthenticator(generate_secret_key(TELEGRAM_BOT_TOKEN))

SUPPORTED_LANGS = {"ru", "en", "es"}
_JSON_METHODS = {"POST", "PUT", "PATCH"}


def _err(code: str, message: str) -> dict:
    return {"code": code, "message": message}


def _unauthorized(code: str, message: str) -> HTTPException:
    return HTTPException(status_code=401, detail=_err(code, message))


def _normalize_lang(code: Optional[str]) -> str:
    # "en-US" -> "en"; неизвестные и пустые -> "en"
    lang = (code or "").lower().split("-")[0]
    return lang if lang in SUPPORTED_LANGS else "en"


def _init_data_from(request: Request, body: Any) -> Optional[str]:
    from_body = body.get("initData") if isinstance(body, dict) else None
    candidates = (
        from_body if isinstance(from_body, str) else None,
        request.headers.get("x-telegram-initdata"),
        request.query_params.get("init_data"),
    )
    return next((c.strip() for c in candidates if c and c.strip()), None)


def _profile_fields(tg_user, telegram_id: int, allows_write_default: bool) -> Dict[str, Any]:
    first_name = getattr(tg_user, "first_name", None)
    last_name = getattr(tg_user, "last_name", None)
    username = getattr(tg_user, "username", None)
    return {
        "first_name": first_name,
        "last_name": last_name,
        "username": username,
        "name": get_display_name(first_name=first_name, last_name=last_name, username=username, telegram_id=telegram_id),
        "photo_url": getattr(tg_user, "photo_url", None),
        "language_code": _normalize_lang(getattr(tg_user, "language_code", None)),
        "allows_write_to_pm": getattr(tg_user, "allows_write_to_pm", allows_write_default),
        "is_premium": bool(getattr(tg_user, "is_premium", False)),
    }


def validate_and_sync_user(init_data: str, db: Session) -> User:
    if not init_data:
        raise _unauthorized("auth_required", "initData is required")
    try:
        tg_user = authenticator.validate(init_data).user
    except Exception as e:
        raise _unauthorized("auth_error", f"Auth error: {e}")

    user: Optional[User] = db.query(User).filter_by(telegram_id=tg_user.id).first()
    if user is None:
        now = utc_now()
        user = User(telegram_id=tg_user.id, created_at=now, updated_at=now)
        db.add(user)

    changed = user.id is None
    for field, value in _profile_fields(tg_user, tg_user.id, user.allows_write_to_pm is not False).items():
        if getattr(user, field) != value:
            setattr(user, field, value)
            changed = True

    if changed:
        db.commit()
        db.refresh(user)
    return user


async def get_current_telegram_user(request: Request, db: Session = Depends(get_db)) -> User:
    body = None
    content_type = request.headers.get("content-type", "")
    if request.method in _JSON_METHODS and content_type.startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            body = None

    init_data = _init_data_from(request, body)
    if not init_data:
        raise _unauthorized(
            "auth_required",
            "initData required (JSON 'initData', header 'x-telegram-initdata' or '?init_data=...')",
        )
    return validate_and_sync_user(init_data, db)
