"""Разделители времени в переписке (src/utils/timeline.py)."""

from datetime import date, datetime, timedelta

from src.utils.timeline import build_timeline, needs_separator, separator_label

TODAY = date(2026, 10, 19)


def _msg(at):
    return {"id": at.isoformat(), "created_at": at}


def test_separator_before_first_and_after_long_gap():
    """Разделитель перед первым сообщением и после паузы больше часа, внутри сессии нет."""
    start = datetime(2026, 10, 19, 9, 0)
    msgs = [_msg(start), _msg(start + timedelta(minutes=30)), _msg(start + timedelta(minutes=95))]
    kinds = [item["type"] for item in build_timeline(msgs, today=TODAY)]
    assert kinds == ["separator", "message", "message", "separator", "message"]


def test_exact_gap_is_same_session():
    start = datetime(2026, 10, 19, 9, 0)
    assert needs_separator(start + timedelta(minutes=60), start) is False
    assert needs_separator(start + timedelta(minutes=61), start) is True
    assert needs_separator(start, None) is True


def test_labels():
    assert separator_label(datetime(2026, 10, 19, 8, 0), TODAY) == "Today"
    assert separator_label(datetime(2026, 10, 18, 23, 0), TODAY) == "Yesterday"
    assert separator_label(datetime(2026, 3, 5, 8, 0), TODAY) == "Mar 5"
    assert separator_label(datetime(2024, 3, 5, 8, 0), TODAY) == "Mar 5, 2024"


def test_empty():
    assert build_timeline([], today=TODAY) == []
