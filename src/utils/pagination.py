# src/utils/pagination.py
# -----------------------------------------------------------------------------
# Курсорная пагинация для всех списков.
#   • Курсор - это пара (ключ сортировки, id) последнего выданного элемента,
#     НЕ offset. Поэтому вставки во время листания не дают ни пропусков, ни дублей.
#   • Курсор хранит значения, а не ссылку на строку: если элемент удалили,
#     выборка продолжится с ближайшего оставшегося.
#   • Битый курсор не ошибка - логируем и начинаем с начала.
#   • is_done = True, если вернулось меньше limit элементов.
# -----------------------------------------------------------------------------

from __future__ import annotations

import base64
import json
import logging
from datetime import datetime
from typing import Any, List, NamedTuple, Optional, Tuple

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

log = logging.getLogger(__name__)

DEFAULT_LIMIT = 20
MAX_LIMIT = 100


class PageResult(NamedTuple):
    items: List[Any]
    next_cursor: Optional[str]
    is_done: bool


def encode_cursor(sort_value: datetime, item_id: Any) -> str:
    raw = json.dumps([sort_value.isoformat(), item_id], separators=(",", ":"))
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii").rstrip("=")


def decode_cursor(token: Optional[str]) -> Optional[Tuple[datetime, Any]]:
    """Возвращает (sort_value, id) или None, если курсора нет или он битый."""
    if not token:
        return None
    try:
        padded = token + "=" * (-len(token) % 4)
        sort_raw, item_id = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
        return datetime.fromisoformat(sort_raw), item_id
    except (ValueError, TypeError):
        log.warning("pagination: malformed cursor %r, starting from the beginning", token)
        return None


def clamp_limit(limit: Optional[int]) -> int:
    if not limit or limit < 1:
        return DEFAULT_LIMIT
    return min(int(limit), MAX_LIMIT)


def paginate(
    db: Session,
    stmt,
    sort_col,
    id_col,
    *,
    limit: Optional[int],
    cursor: Optional[str] = None,
    ascending: bool = False,
    sort_attr: Optional[str] = None,
    id_attr: Optional[str] = None,
) -> PageResult:
    """
    Выполняет select-запрос stmt (уже с фильтрами) постранично по (sort_col, id_col).
    sort_attr/id_attr - имена атрибутов ORM-объекта для сборки следующего курсора
    (по умолчанию совпадают с именами колонок).
    """
    limit = clamp_limit(limit)
    decoded = decode_cursor(cursor)

    if decoded is not None:
        sort_value, last_id = decoded
        if ascending:
            stmt = stmt.where(or_(sort_col > sort_value, and_(sort_col == sort_value, id_col > last_id)))
        else:
            stmt = stmt.where(or_(sort_col < sort_value, and_(sort_col == sort_value, id_col < last_id)))

    if ascending:
        stmt = stmt.order_by(sort_col.asc(), id_col.asc())
    else:
        stmt = stmt.order_by(sort_col.desc(), id_col.desc())

    items = list(db.execute(stmt.limit(limit)).scalars().all())

    if items:
        last = items[-1]
        next_cursor = encode_cursor(
            getattr(last, sort_attr or sort_col.key),
            getattr(last, id_attr or id_col.key),
        )
    else:
        next_cursor = cursor if decoded is not None else None

    return PageResult(items=items, next_cursor=next_cursor, is_done=len(items) < limit)
