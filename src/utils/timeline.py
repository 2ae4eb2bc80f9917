# src/utils/timeline.py
# Разделители времени в переписке - чистая функция над упорядоченной
# последовательностью сообщений, ничего не хранится в БД.
#   • разделитель перед первым сообщением;
#   • разделитель, если пауза с предыдущим сообщением больше порога;
#   • сообщения одной «сессии» (в пределах порога) не разделяются.

from __future__ import annotations

import os
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from src.utils.clock import utc_now

DEFAULT_GAP = timedelta(minutes=int(os.getenv("MESSAGE_SEPARATOR_GAP_MIN", "60")))

_MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


def needs_separator(current: datetime, previous: Optional[datetime], gap: timedelta = DEFAULT_GAP) -> bool:
    if previous is None:
        return True
    return (current - previous) > gap


def separator_label(moment: datetime, today: date) -> str:
    """Today / Yesterday / 'Mar 5' / 'Mar 5, 2024'."""
    d = moment.date()
    if d == today:
        return "Today"
    if d == today - timedelta(days=1):
        return "Yesterday"
    if d.year == today.year:
        return f"{_MONTHS[d.month - 1]} {d.day}"
    return f"{_MONTHS[d.month - 1]} {d.day}, {d.year}"


def build_timeline(
    messages: Iterable[Any],
    *,
    gap: timedelta = DEFAULT_GAP,
    today: Optional[date] = None,
) -> List[Dict[str, Any]]:
    """
    messages - в хронологическом порядке (старые -> новые), у каждого есть created_at.
    Возвращает плоский список элементов {"type": "separator"|"message", ...}.
    """
    today = today or utc_now().date()
    items: List[Dict[str, Any]] = []
    previous: Optional[datetime] = None
    for msg in messages:
        created_at = msg["created_at"] if isinstance(msg, dict) else msg.created_at
        if needs_separator(created_at, previous, gap):
            items.append({"type": "separator", "at": created_at, "label": separator_label(created_at, today)})
        items.append({"type": "message", "message": msg})
        previous = created_at
    return items
