# src/utils/user.py

from typing import Dict, Iterable, Optional

from sqlalchemy.orm import Session

from src.models.user import User


def get_display_name(first_name: str = "", last_name: str = "", username: str = "", telegram_id: int = None) -> str:
    """
    Формирует отображаемое имя пользователя:
    1. Если есть first_name и last_name - склеивает через пробел.
    2. Если есть только first_name - его.
    3. Если нет имени - username.
    4. Если и username нет - Telegram ID.
    """
    name = " ".join(filter(None, [first_name, last_name]))
    if name.strip():
        return name.strip()
    if username:
        return username
    if telegram_id is not None:
        return str(telegram_id)
    return ""


def load_users_map(db: Session, ids: Iterable[int]) -> Dict[int, User]:
    """Один запрос на пачку id -> {id: User}. Отсутствующих просто нет в словаре."""
    ids = {i for i in ids if i is not None}
    if not ids:
        return {}
    return {u.id: u for u in db.query(User).filter(User.id.in_(ids)).all()}


def user_brief(user: Optional[User]) -> Optional[dict]:
    """
    Минимальные поля для карточек (имя, аватар, премиум) - собираются при чтении,
    копии в других таблицах не храним.
    """
    if user is None:
        return None
    return {
        "id": user.id,
        "name": user.name,
        "photo_url": user.photo_url,
        "is_premium": bool(user.is_premium),
    }
