"""Заявки в друзья, дружба и блокировка (src/services/friends.py).

Invariants:
  - не больше одной висящей заявки на неупорядоченную пару;
  - принятая дружба видна обеим сторонам сразу (одна строка на пару);
  - после accept/reject заявки нет, повторная заявка возможна;
  - блокировка снимает дружбу и висящие заявки, дальнейшие заявки запрещены в обе стороны.
"""

import pytest

from src.models.friend_request import FriendRequest
from src.models.notification import Notification
from src.services import friends
from src.services.errors import ConflictError, NotAuthorized, NotFound, ValidationError


def _ids(page, viewer_id):
    return [link.other_id(viewer_id) for link in page.items]


def test_accept_is_visible_from_both_sides(db, make_user):
    """После accept оба видят друг друга в списке друзей."""
    alice, bob = make_user("Alice"), make_user("Bob")
    req = friends.send_request(db, alice.id, bob.id, "hi")
    friends.accept_request(db, req.id, bob.id)
    db.commit()

    assert _ids(friends.list_friends(db, alice.id, limit=10), alice.id) == [bob.id]
    assert _ids(friends.list_friends(db, bob.id, limit=10), bob.id) == [alice.id]
    assert db.query(FriendRequest).count() == 0


def test_duplicate_pending_in_either_direction(db, make_user):
    """Вторая заявка в любую сторону пары отклоняется как дубликат."""
    alice, bob = make_user(), make_user()
    friends.send_request(db, alice.id, bob.id)
    db.commit()

    with pytest.raises(ConflictError) as same:
        friends.send_request(db, alice.id, bob.id)
    assert same.value.code == "duplicate_pending"

    with pytest.raises(ConflictError) as reverse:
        friends.send_request(db, bob.id, alice.id)
    assert reverse.value.code == "duplicate_pending"


def test_concurrent_counter_request_is_conflict_not_integrity_error(db, make_user, monkeypatch):
    """Встречная заявка закоммичена после проверки: уникальный индекс пары даёт ConflictError."""
    alice, bob = make_user(), make_user()
    alice_id, bob_id = alice.id, bob.id
    friends.send_request(db, alice_id, bob_id)
    db.commit()

    # проверка не увидела чужую заявку: вставка упирается в uq_friend_requests_pair
    monkeypatch.setattr(friends, "_pending_between", lambda *args: None)
    with pytest.raises(ConflictError) as exc:
        friends.send_request(db, bob_id, alice_id)
    assert exc.value.code == "duplicate_pending"

    assert db.query(FriendRequest).count() == 1
    assert db.query(Notification).filter_by(recipient_id=alice_id).count() == 0


def test_request_to_friend_is_rejected(db, make_user, befriend):
    alice, bob = make_user(), make_user()
    befriend(alice, bob)
    with pytest.raises(ConflictError) as exc:
        friends.send_request(db, bob.id, alice.id)
    assert exc.value.code == "already_friends"


def test_resend_after_reject(db, make_user):
    """Отклонённая заявка не мешает отправить новую."""
    alice, bob = make_user(), make_user()
    req = friends.send_request(db, alice.id, bob.id)
    friends.reject_request(db, req.id, bob.id)
    db.commit()

    again = friends.send_request(db, alice.id, bob.id)
    db.commit()
    assert again.id is not None


def test_resend_after_unfriend(db, make_user):
    alice, bob = make_user(), make_user()
    req = friends.send_request(db, alice.id, bob.id)
    friends.accept_request(db, req.id, bob.id)
    friends.unfriend(db, bob.id, alice.id)
    db.commit()

    assert friends.are_friends(db, alice.id, bob.id) is False
    friends.send_request(db, bob.id, alice.id)
    db.commit()


def test_invalid_targets(db, make_user):
    alice = make_user()
    with pytest.raises(ValidationError) as self_req:
        friends.send_request(db, alice.id, alice.id)
    assert self_req.value.code == "invalid_target"

    with pytest.raises(NotFound) as missing:
        friends.send_request(db, alice.id, 999_999)
    assert missing.value.code == "user_not_found"


def test_message_length_limit(db, make_user):
    alice, bob = make_user(), make_user()
    with pytest.raises(ValidationError) as exc:
        friends.send_request(db, alice.id, bob.id, "x" * 301)
    assert exc.value.code == "message_too_long"


def test_only_receiver_can_respond_and_only_sender_can_cancel(db, make_user):
    alice, bob, carol = make_user(), make_user(), make_user()
    req = friends.send_request(db, alice.id, bob.id)
    db.commit()

    with pytest.raises(NotAuthorized):
        friends.accept_request(db, req.id, alice.id)
    with pytest.raises(NotAuthorized):
        friends.reject_request(db, req.id, carol.id)
    with pytest.raises(NotAuthorized):
        friends.cancel_request(db, req.id, bob.id)

    friends.cancel_request(db, req.id, alice.id)
    db.commit()
    with pytest.raises(NotFound):
        friends.accept_request(db, req.id, bob.id)


def test_request_lists(db, make_user):
    alice, bob, carol = make_user(), make_user(), make_user()
    friends.send_request(db, alice.id, bob.id)
    friends.send_request(db, carol.id, bob.id)
    db.commit()

    incoming = friends.list_incoming_requests(db, bob.id, limit=10)
    assert [r.sender_id for r in incoming.items] == [carol.id, alice.id]
    outgoing = friends.list_outgoing_requests(db, alice.id, limit=10)
    assert [r.receiver_id for r in outgoing.items] == [bob.id]


def test_transitions_emit_notifications(db, make_user):
    """sent -> получателю, accepted -> отправителю."""
    alice, bob = make_user(), make_user()
    req = friends.send_request(db, alice.id, bob.id)
    friends.accept_request(db, req.id, bob.id)
    db.commit()

    to_bob = db.query(Notification).filter_by(recipient_id=bob.id).all()
    to_alice = db.query(Notification).filter_by(recipient_id=alice.id).all()
    assert [n.type for n in to_bob] == ["friend_request_sent"]
    assert [n.type for n in to_alice] == ["friend_request_accepted"]


def test_block_removes_friendship_and_forbids_requests(db, make_user, befriend):
    """Блокировка снимает дружбу, заявки запрещены в обе стороны до разблокировки."""
    alice, bob = make_user(), make_user()
    befriend(alice, bob)

    friends.block_user(db, alice.id, bob.id)
    friends.block_user(db, alice.id, bob.id)
    db.commit()

    assert friends.are_friends(db, alice.id, bob.id) is False
    for sender, receiver in ((alice, bob), (bob, alice)):
        with pytest.raises(NotAuthorized) as exc:
            friends.send_request(db, sender.id, receiver.id)
        assert exc.value.code == "blocked"

    friends.unblock_user(db, alice.id, bob.id)
    db.commit()
    friends.send_request(db, bob.id, alice.id)
    db.commit()


def test_block_drops_pending_request(db, make_user):
    alice, bob = make_user(), make_user()
    friends.send_request(db, bob.id, alice.id)
    friends.block_user(db, alice.id, bob.id)
    db.commit()
    assert db.query(FriendRequest).count() == 0


def test_unblock_without_block(db, make_user):
    alice, bob = make_user(), make_user()
    with pytest.raises(NotFound) as exc:
        friends.unblock_user(db, alice.id, bob.id)
    assert exc.value.code == "not_blocked"
