"""Курсорная пагинация (src/utils/pagination.py).

Invariants:
  - вставки между страницами не дают ни дублей, ни пропусков среди старых элементов;
  - удалённый «курсорный» элемент не ломает продолжение;
  - битый курсор не ошибка: выдача начинается с начала;
  - is_done = True, когда вернулось меньше limit.
"""

from datetime import datetime, timedelta

from src.models.notification import Notification
from src.services import notifications as notif
from src.utils.pagination import clamp_limit, decode_cursor, encode_cursor

BASE = datetime(2026, 1, 1, 12, 0, 0)


def _add(db, recipient, n, offset=0):
    rows = []
    for i in range(n):
        row = Notification(
            recipient_id=recipient.id,
            actor_id=recipient.id + 1000,
            type=notif.FRIEND_REMOVED,
            created_at=BASE + timedelta(minutes=offset + i),
        )
        db.add(row)
        rows.append(row)
    db.commit()
    return rows


def _walk(db, recipient, limit):
    seen, cursor = [], None
    while True:
        page = notif.list_notifications(db, recipient.id, limit=limit, cursor=cursor)
        seen.extend(n.id for n in page.items)
        if page.is_done:
            return seen
        cursor = page.next_cursor


def test_full_walk_returns_every_item_once(db, make_user):
    """Полный проход страницами по 3 возвращает все 10 элементов, новые сверху."""
    user = make_user()
    rows = _add(db, user, 10)
    seen = _walk(db, user, 3)
    assert seen == [r.id for r in reversed(rows)]


def test_inserts_between_pages_do_not_shift_older_items(db, make_user):
    """Новые элементы после первой страницы не попадают в продолжение и не сдвигают его."""
    user = make_user()
    rows = _add(db, user, 6)

    first = notif.list_notifications(db, user.id, limit=3, cursor=None)
    _add(db, user, 5, offset=100)
    second = notif.list_notifications(db, user.id, limit=3, cursor=first.next_cursor)

    got = [n.id for n in first.items] + [n.id for n in second.items]
    assert got == [r.id for r in reversed(rows)]
    assert len(set(got)) == len(got)


def test_deleted_cursor_item_continues_from_next_remaining(db, make_user):
    """Удаление последнего элемента страницы не ломает курсор."""
    user = make_user()
    rows = _add(db, user, 5)
    first = notif.list_notifications(db, user.id, limit=2, cursor=None)
    db.delete(first.items[-1])
    db.commit()

    second = notif.list_notifications(db, user.id, limit=2, cursor=first.next_cursor)
    assert [n.id for n in second.items] == [rows[2].id, rows[1].id]


def test_malformed_cursor_restarts_from_beginning(db, make_user):
    """Битый курсор даёт первую страницу, а не ошибку."""
    user = make_user()
    rows = _add(db, user, 3)
    page = notif.list_notifications(db, user.id, limit=10, cursor="not-a-cursor!!")
    assert [n.id for n in page.items] == [r.id for r in reversed(rows)]
    assert page.is_done is True


def test_empty_list_is_done_without_cursor(db, make_user):
    user = make_user()
    page = notif.list_notifications(db, user.id, limit=5, cursor=None)
    assert page.items == []
    assert page.is_done is True
    assert page.next_cursor is None


def test_cursor_helpers():
    """encode/decode симметричны, лимит приводится к допустимому диапазону."""
    token = encode_cursor(BASE, 42)
    assert decode_cursor(token) == (BASE, 42)
    assert decode_cursor(None) is None
    assert clamp_limit(0) == 20
    assert clamp_limit(1000) == 100
