# src/utils/clock.py

from datetime import datetime, timezone


def utc_now() -> datetime:
    """
    Текущее время в UTC без tzinfo - в БД все DateTime-колонки хранятся как naive UTC.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)
