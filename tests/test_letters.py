"""Отложенные письма (src/services/letters.py, src/jobs/letter_delivery.py).

Invariants:
  - только другу, заголовок 1..100, текст 100..2000, срок 1..30 дней;
  - получатель не видит письмо до доставки, отправитель видит его в отправленных;
  - scheduled -> delivered ровно один раз, даже при повторных или параллельных прогонах;
  - на одну доставку ровно одно уведомление получателю.

Design Decisions:
  - параллельный прогон моделируется двумя сессиями на одном файле SQLite:
    первая доставляет и коммитит, вторая, выбравшая то же письмо раньше, проигрывает CAS.
"""

from datetime import timedelta

import pytest

from src.jobs.letter_delivery import deliver_due_letters_once
from src.models.letter import Letter, LetterStatus
from src.models.notification import Notification
from src.services import letters
from src.services.errors import InvalidState, NotAuthorized, NotFound, ValidationError

BODY = "Привет из прошлого! " * 10


@pytest.fixture
def pair(make_user, befriend):
    alice, bob = make_user("Alice"), make_user("Bob")
    befriend(alice, bob)
    return alice, bob


@pytest.fixture
def scheduled(db, pair, clock):
    alice, bob = pair
    letter = letters.schedule_letter(db, alice.id, bob.id, title="Через неделю", content=BODY, days_until_delivery=7)
    db.commit()
    return letter


def _due(clock):
    return clock.current + timedelta(days=8)


@pytest.mark.parametrize(
    "kwargs, code",
    [
        ({"title": "", "content": BODY, "days_until_delivery": 3}, "invalid_title"),
        ({"title": "t" * 101, "content": BODY, "days_until_delivery": 3}, "invalid_title"),
        ({"title": "t", "content": "коротко", "days_until_delivery": 3}, "invalid_content"),
        ({"title": "t", "content": "x" * 2001, "days_until_delivery": 3}, "invalid_content"),
        ({"title": "t", "content": BODY, "days_until_delivery": 0}, "invalid_days"),
        ({"title": "t", "content": BODY, "days_until_delivery": 31}, "invalid_days"),
        ({"title": "t", "content": BODY, "days_until_delivery": True}, "invalid_days"),
        ({"title": "t", "content": BODY, "days_until_delivery": "3"}, "invalid_days"),
    ],
)
def test_validation_bounds(db, pair, kwargs, code):
    alice, bob = pair
    with pytest.raises(ValidationError) as exc:
        letters.schedule_letter(db, alice.id, bob.id, **kwargs)
    assert exc.value.code == code


def test_boundary_values_are_accepted(db, pair):
    alice, bob = pair
    letters.schedule_letter(db, alice.id, bob.id, title="t" * 100, content="x" * 100, days_until_delivery=1)
    letters.schedule_letter(db, alice.id, bob.id, title="t", content="x" * 2000, days_until_delivery=30)
    db.commit()


def test_only_to_friends(db, make_user):
    alice, carol = make_user(), make_user()
    with pytest.raises(NotAuthorized) as exc:
        letters.schedule_letter(db, alice.id, carol.id, title="t", content=BODY, days_until_delivery=3)
    assert exc.value.code == "not_friends"


def test_deliver_at_is_created_plus_days(scheduled):
    assert scheduled.deliver_at - scheduled.created_at == timedelta(days=7)
    assert scheduled.status == LetterStatus.scheduled


def test_recipient_cannot_see_before_delivery(db, pair, scheduled):
    """До доставки письма у получателя нет ни в списке, ни по id; у отправителя оно есть."""
    alice, bob = pair
    assert letters.list_received(db, bob.id, limit=10).items == []
    with pytest.raises(NotFound):
        letters.get_letter(db, scheduled.id, bob.id)

    sent = letters.list_sent(db, alice.id, limit=10, status=LetterStatus.scheduled)
    assert [letter.id for letter in sent.items] == [scheduled.id]
    assert db.query(Notification).count() == 0


def test_not_delivered_before_deliver_at(db, session_factory, scheduled, clock):
    summary = deliver_due_letters_once(session_factory, now=clock.current + timedelta(days=6))
    assert summary["delivered_count"] == 0


def test_double_sweep_delivers_once(db, session_factory, pair, scheduled, clock, push_channel):
    """Два прогона подряд: доставка и уведомление ровно один раз."""
    alice, bob = pair
    now = _due(clock)

    first = deliver_due_letters_once(session_factory, now=now)
    second = deliver_due_letters_once(session_factory, now=now)

    assert first["delivered_ids"] == [scheduled.id]
    assert second["delivered_count"] == 0

    db.expire_all()
    letter = db.get(Letter, scheduled.id)
    assert letter.status == LetterStatus.delivered
    assert letter.delivered_at == now

    notes = db.query(Notification).filter_by(recipient_id=bob.id).all()
    assert [(n.type, n.actor_id, n.idempotency_key) for n in notes] == [
        ("letter_scheduled", alice.id, f"letter_delivered:{scheduled.id}")
    ]
    assert len(push_channel.sent) == 1
    assert [letter.id for letter in letters.list_received(db, bob.id, limit=10).items] == [scheduled.id]


def test_concurrent_sweeps_race_on_same_letter(db, session_factory, scheduled, clock):
    """Оба прогона выбрали письмо, переход выполняет только один."""
    now = _due(clock)
    s1, s2 = session_factory(), session_factory()
    try:
        assert letters.due_letter_ids(s1, now) == [scheduled.id]
        assert letters.due_letter_ids(s2, now) == [scheduled.id]

        assert letters.deliver_letter(s1, scheduled.id, now) is True
        s1.commit()
        assert letters.deliver_letter(s2, scheduled.id, now) is False
        s2.commit()
    finally:
        s1.close()
        s2.close()

    assert db.query(Notification).count() == 1


def test_delete_only_after_delivery(db, session_factory, pair, scheduled, clock):
    alice, bob = pair
    with pytest.raises(InvalidState) as exc:
        letters.delete_letter(db, scheduled.id, alice.id)
    assert exc.value.code == "letter_not_delivered"

    deliver_due_letters_once(session_factory, now=_due(clock))
    db.expire_all()

    letters.delete_letter(db, scheduled.id, bob.id)
    db.commit()
    assert db.query(Letter).count() == 0
