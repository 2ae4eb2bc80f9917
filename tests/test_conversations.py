"""Личная переписка (src/services/conversations.py).

Invariants:
  - писать можно только другу, ровно текст или картинка;
  - ответ на удалённое сообщение отдаётся с заглушкой, а не ошибкой;
  - read_at ставит только получатель и только один раз;
  - удаление переписки локально: у собеседника всё остаётся, новое сообщение
    возвращает переписку в список удалившего.
  - листание курсором без дублей и пропусков, даже если курсорное сообщение удалили;
  - первое сообщение пары создаёт ровно одну строку conversations, даже при гонке.
"""

import pytest

from src.models.conversation import Conversation
from src.models.conversation_hidden import ConversationHidden
from src.models.message import Message
from src.models.notification import Notification
from src.services import conversations as conv
from src.services.errors import NotAuthorized, ValidationError


@pytest.fixture
def pair(make_user, befriend):
    alice, bob = make_user("Alice"), make_user("Bob")
    befriend(alice, bob)
    return alice, bob


def _messages(db, group_id, viewer):
    return conv.list_messages(db, group_id, viewer.id, limit=50).items


def test_only_friends_can_write(db, make_user):
    alice, bob = make_user(), make_user()
    with pytest.raises(NotAuthorized) as exc:
        conv.send_message(db, alice.id, bob.id, content="hi")
    assert exc.value.code == "not_friends"


def test_payload_is_text_xor_image(db, pair):
    alice, bob = pair
    with pytest.raises(ValidationError):
        conv.send_message(db, alice.id, bob.id)
    with pytest.raises(ValidationError):
        conv.send_message(db, alice.id, bob.id, content="hi", image_ref="chat_images/a.jpg")
    with pytest.raises(ValidationError) as too_long:
        conv.send_message(db, alice.id, bob.id, content="x" * 2001)
    assert too_long.value.code == "content_too_long"


def test_group_id_is_symmetric(pair):
    alice, bob = pair
    assert conv.conversation_group_id(alice.id, bob.id) == conv.conversation_group_id(bob.id, alice.id)


def test_reply_to_deleted_message_shows_placeholder(db, pair):
    """Удалённый родитель: {"id", "unavailable": True}, ответ остаётся."""
    alice, bob = pair
    parent = conv.send_message(db, alice.id, bob.id, content="вопрос")
    reply = conv.send_message(db, bob.id, alice.id, content="ответ", reply_parent_id=parent.id)
    db.commit()
    parent_id, group_id = parent.id, parent.group_id

    conv.delete_message(db, parent_id, alice.id)
    db.commit()

    items = _messages(db, group_id, bob)
    assert [m["id"] for m in items] == [reply.id]
    assert items[0]["reply_parent"] == {"id": parent_id, "unavailable": True}


def test_only_sender_deletes(db, pair):
    alice, bob = pair
    msg = conv.send_message(db, alice.id, bob.id, content="hi")
    db.commit()
    with pytest.raises(NotAuthorized):
        conv.delete_message(db, msg.id, bob.id)


def test_mark_read_is_idempotent_and_receiver_only(db, pair):
    alice, bob = pair
    msg = conv.send_message(db, alice.id, bob.id, content="hi")
    db.commit()

    with pytest.raises(NotAuthorized):
        conv.mark_read(db, msg.id, alice.id)

    first = conv.mark_read(db, msg.id, bob.id).read_at
    db.commit()
    second = conv.mark_read(db, msg.id, bob.id).read_at
    assert first is not None
    assert second == first


def test_listing_marks_incoming_as_read(db, pair):
    alice, bob = pair
    msg = conv.send_message(db, alice.id, bob.id, content="hi")
    db.commit()
    assert conv.has_unread(db, msg.group_id, bob.id) is True
    assert conv.has_unread(db, msg.group_id, alice.id) is False

    _messages(db, msg.group_id, bob)
    db.commit()
    assert conv.has_unread(db, msg.group_id, bob.id) is False


def test_local_delete_hides_only_for_actor(db, pair):
    """Удаливший не видит переписку, собеседник видит всё."""
    alice, bob = pair
    msg = conv.send_message(db, alice.id, bob.id, content="hi")
    db.commit()
    group_id = msg.group_id

    conv.delete_conversation(db, group_id, alice.id)
    db.commit()

    assert conv.list_conversations(db, alice.id, limit=10).items == []
    assert _messages(db, group_id, alice) == []
    assert [c["group_id"] for c in conv.list_conversations(db, bob.id, limit=10).items] == [group_id]
    assert len(_messages(db, group_id, bob)) == 1
    assert db.query(Notification).filter_by(recipient_id=bob.id, type="conversation_deleted").count() == 1


def test_new_message_brings_conversation_back(db, pair):
    alice, bob = pair
    old = conv.send_message(db, alice.id, bob.id, content="старое")
    db.commit()
    group_id = old.group_id
    conv.delete_conversation(db, group_id, alice.id)
    db.commit()

    new = conv.send_message(db, bob.id, alice.id, content="новое")
    db.commit()

    listed = conv.list_conversations(db, alice.id, limit=10).items
    assert [c["group_id"] for c in listed] == [group_id]
    assert listed[0]["has_unread"] is True
    assert listed[0]["last_message_preview"] == "новое"
    assert [m["id"] for m in _messages(db, group_id, alice)] == [new.id]

    conv.delete_conversation(db, group_id, alice.id)
    db.commit()
    assert db.query(ConversationHidden).count() == 1


def test_image_preview_and_push(db, pair, push_channel):
    alice, bob = pair
    conv.send_message(db, alice.id, bob.id, image_ref="chat_images/a.jpg")
    db.commit()
    listed = conv.list_conversations(db, bob.id, limit=10).items
    assert listed[0]["last_message_preview"] == "[image]"
    assert push_channel.sent[-1]["data"]["type"] == "message"
    assert push_channel.sent[-1]["title"] == "Alice"


def test_deleting_last_message_recomputes_preview(db, pair):
    alice, bob = pair
    conv.send_message(db, alice.id, bob.id, content="первое")
    last = conv.send_message(db, alice.id, bob.id, content="второе")
    db.commit()
    conv.delete_message(db, last.id, alice.id)
    db.commit()
    listed = conv.list_conversations(db, bob.id, limit=10).items
    assert listed[0]["last_message_preview"] == "первое"


def test_cursor_walk_survives_inserts_and_deleted_cursor_item(db, pair):
    """Новое сообщение после первой страницы не сдвигает листание, удалённый курсорный элемент не ломает его."""
    alice, bob = pair
    sent = [conv.send_message(db, alice.id, bob.id, content=f"m{i}") for i in range(1, 6)]
    db.commit()
    m1, m2, m3, m4, m5 = [m.id for m in sent]
    group_id = sent[0].group_id

    first = conv.list_messages(db, group_id, bob.id, limit=2)
    db.commit()
    assert [m["id"] for m in first.items] == [m5, m4]
    assert first.is_done is False

    fresh = conv.send_message(db, alice.id, bob.id, content="m6")
    db.commit()

    second = conv.list_messages(db, group_id, bob.id, limit=2, cursor=first.next_cursor)
    db.commit()
    assert [m["id"] for m in second.items] == [m3, m2]

    # курсор второй страницы указывает на m2, удаляем его
    conv.delete_message(db, m2, alice.id)
    db.commit()

    third = conv.list_messages(db, group_id, bob.id, limit=2, cursor=second.next_cursor)
    assert [m["id"] for m in third.items] == [m1]
    assert third.is_done is True

    seen = [m["id"] for page in (first, second, third) for m in page.items]
    assert len(seen) == len(set(seen))
    assert fresh.id not in seen
    assert [m["id"] for m in _messages(db, group_id, bob)] == [fresh.id, m5, m4, m3, m1]


def test_reply_to_cleared_parent_is_unavailable_for_clearing_user(db, pair):
    """Родитель, стёртый локальным удалением, у удалившего - заглушка, у собеседника - обычное превью."""
    alice, bob = pair
    parent = conv.send_message(db, alice.id, bob.id, content="вопрос")
    db.commit()
    parent_id, group_id = parent.id, parent.group_id

    conv.delete_conversation(db, group_id, alice.id)
    db.commit()

    reply = conv.send_message(db, bob.id, alice.id, content="ответ", reply_parent_id=parent_id)
    db.commit()

    for_alice = _messages(db, group_id, alice)
    assert [m["id"] for m in for_alice] == [reply.id]
    assert for_alice[0]["reply_parent"] == {"id": parent_id, "unavailable": True}

    for_bob = _messages(db, group_id, bob)
    assert for_bob[0]["reply_parent"]["unavailable"] is False
    assert for_bob[0]["reply_parent"]["content"] == "вопрос"


def test_concurrent_first_messages_share_one_conversation(db, session_factory, pair, monkeypatch):
    """Оба написали первыми одновременно: вторая вставка conversations не падает, а берёт готовую строку."""
    alice, bob = pair
    alice_id, bob_id = alice.id, bob.id

    first = conv.send_message(db, alice_id, bob_id, content="привет")
    db.commit()
    group_id = first.group_id

    other = session_factory()
    try:
        # второй участник проверял наличие переписки до commit первого
        real_get = other.get
        stale = []

        def get_before_commit(entity, ident, **kwargs):
            if entity is Conversation and not stale:
                stale.append(ident)
                return None
            return real_get(entity, ident, **kwargs)

        monkeypatch.setattr(other, "get", get_before_commit)
        second = conv.send_message(other, bob_id, alice_id, content="и тебе")
        other.commit()
        second_id = second.id
    finally:
        other.close()

    assert stale == [group_id]
    assert db.query(Conversation).count() == 1
    assert {m.id for m in db.query(Message).filter_by(group_id=group_id)} == {first.id, second_id}
    db.expire_all()
    assert db.get(Conversation, group_id).last_message_id == second_id
