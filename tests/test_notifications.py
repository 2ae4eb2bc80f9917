"""Уведомления и push (src/services/notifications.py, src/services/push.py).

Invariants:
  - реакция/снятие/реакция схлопывается в одну непрочитанную строку со сдвинутым created_at;
  - после прочтения повтор создаёт новую строку;
  - mark_all_read идемпотентен, delete_all удаляет всё;
  - один idempotency_key -> одна строка;
  - push уходит только после commit, при откате не уходит, ошибка канала не ломает переход.
"""

import pytest

from src.models.friend import Friend
from src.models.notification import Notification
from src.services import feed, friends
from src.services import notifications as notif


@pytest.fixture
def post_pair(db, make_user, befriend):
    author, fan = make_user("Author"), make_user("Fan")
    befriend(author, fan)
    post = feed.create_post(db, author.id, content="мой первый пост")
    db.commit()
    return author, fan, post


def _rows(db, recipient):
    return db.query(Notification).filter_by(recipient_id=recipient.id).order_by(Notification.id).all()


def test_reaction_toggle_collapses_into_one_unread_row(db, post_pair, push_channel):
    """react -> unreact -> react даёт одну строку, её created_at сдвигается вперёд."""
    author, fan, post = post_pair
    feed.toggle_reaction(db, fan.id, post.id, "🔥")
    db.commit()
    first = _rows(db, author)
    assert len(first) == 1
    created_before = first[0].created_at

    assert feed.toggle_reaction(db, fan.id, post.id, "🔥") is None
    feed.toggle_reaction(db, fan.id, post.id, "🔥")
    db.commit()

    rows = _rows(db, author)
    assert len(rows) == 1
    assert rows[0].type == "post_reaction"
    assert rows[0].subject_ref == f"post:{post.id}"
    assert rows[0].created_at > created_before
    assert len(push_channel.sent) == 1


def test_read_notification_is_not_collapsed(db, post_pair):
    author, fan, post = post_pair
    feed.toggle_reaction(db, fan.id, post.id, "👍")
    db.commit()
    assert notif.mark_all_read(db, author.id) == 1
    db.commit()

    feed.toggle_reaction(db, fan.id, post.id, "👍")
    feed.toggle_reaction(db, fan.id, post.id, "👍")
    db.commit()

    rows = _rows(db, author)
    assert len(rows) == 2
    assert rows[0].read_at is not None
    assert rows[1].read_at is None


def test_changing_emoji_keeps_single_reaction(db, post_pair):
    author, fan, post = post_pair
    feed.toggle_reaction(db, fan.id, post.id, "👍")
    reaction = feed.toggle_reaction(db, fan.id, post.id, "❤️")
    db.commit()
    db.refresh(post)
    assert reaction.emoji == "❤️"
    assert post.reactions_count == 1


def test_comment_and_reply_notifications(db, post_pair):
    author, fan, post = post_pair
    top = feed.add_comment(db, fan.id, post.id, content="круто")
    feed.add_comment(db, author.id, post.id, content="спасибо", reply_parent_id=top.id)
    db.commit()

    assert [n.type for n in _rows(db, author)] == ["post_commented"]
    assert [n.type for n in _rows(db, fan)] == ["comment_replied"]


def test_mark_all_read_is_idempotent(db, make_user):
    alice, bob = make_user(), make_user()
    friends.send_request(db, alice.id, bob.id)
    db.commit()

    assert notif.has_unread(db, bob.id) is True
    assert notif.mark_all_read(db, bob.id) == 1
    db.commit()
    assert notif.mark_all_read(db, bob.id) == 0
    assert notif.has_unread(db, bob.id) is False


def test_delete_all(db, make_user):
    alice, bob, carol = make_user(), make_user(), make_user()
    friends.send_request(db, alice.id, bob.id)
    friends.send_request(db, carol.id, bob.id)
    db.commit()

    assert notif.delete_all(db, bob.id) == 2
    db.commit()
    assert notif.list_notifications(db, bob.id, limit=10).items == []


def test_idempotency_key_writes_once(db, make_user, push_channel):
    alice, bob = make_user(), make_user()
    a = notif.emit(db, recipient_id=bob.id, actor_id=alice.id, type=notif.GIFT_RECEIVED, idempotency_key="gift:1")
    b = notif.emit(db, recipient_id=bob.id, actor_id=alice.id, type=notif.GIFT_RECEIVED, idempotency_key="gift:1")
    db.commit()

    assert a.id == b.id
    assert len(_rows(db, bob)) == 1
    assert len(push_channel.sent) == 1


def test_self_notification_is_skipped(db, make_user):
    alice = make_user()
    assert notif.emit(db, recipient_id=alice.id, actor_id=alice.id, type=notif.POST_REACTION) is None
    assert db.query(Notification).count() == 0


def test_unknown_type_is_rejected(db, make_user):
    alice, bob = make_user(), make_user()
    with pytest.raises(ValueError):
        notif.emit(db, recipient_id=bob.id, actor_id=alice.id, type="poke")


def test_push_only_after_commit(db, make_user, push_channel):
    alice, bob = make_user("Alice"), make_user("Bob")
    friends.send_request(db, alice.id, bob.id)
    assert push_channel.sent == []

    db.commit()
    assert len(push_channel.sent) == 1
    assert push_channel.sent[0]["device_token"] == str(bob.telegram_id)
    assert push_channel.sent[0]["body"] == "Alice wants to be your friend"


def test_no_push_on_rollback(db, make_user, push_channel):
    alice, bob = make_user(), make_user()
    friends.send_request(db, alice.id, bob.id)
    db.rollback()

    assert push_channel.sent == []
    assert db.query(Notification).count() == 0


def test_user_without_pm_gets_no_push(db, make_user, push_channel):
    alice, bob = make_user(), make_user(allows_write_to_pm=False)
    friends.send_request(db, alice.id, bob.id)
    db.commit()
    assert push_channel.sent == []
    assert len(_rows(db, bob)) == 1


def test_push_failure_does_not_break_accept(db, make_user, push_channel):
    """Упавший канал доставки не откатывает принятие заявки."""
    alice, bob = make_user(), make_user()
    req = friends.send_request(db, alice.id, bob.id)
    db.commit()

    push_channel.fail = True
    friends.accept_request(db, req.id, bob.id)
    db.commit()

    assert db.query(Friend).count() == 1
    assert friends.are_friends(db, alice.id, bob.id) is True
