import os
import sys
import datetime
import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../backend")))
from models import db_models
from services import history


def test_create_and_get_chat(db_session, make_user):
    """A new chat belongs to its user and starts with equal timestamps."""
    user_id = make_user()
    chat = history.create_chat(db_session, user_id, "Launch a bakery")

    assert chat.id is not None
    assert chat.title == "Launch a bakery"
    assert chat.created_at == chat.updated_at

    fetched = history.get_chat(db_session, user_id, chat.id)
    assert fetched is not None
    assert fetched.id == chat.id


def test_create_chat_defaults_title(db_session, make_user):
    user_id = make_user()
    chat = history.create_chat(db_session, user_id, "")
    assert chat.title == history.DEFAULT_TITLE


def test_chats_are_scoped_to_owner(db_session, make_user):
    """Another user's chat is invisible and cannot be modified."""
    alice = make_user("alice@example.com")
    bob = make_user("bob@example.com")
    chat = history.create_chat(db_session, alice, "Alice's chat")

    assert history.get_chat(db_session, bob, chat.id) is None
    assert history.get_chats(db_session, bob) == []
    with pytest.raises(history.ChatNotFound):
        history.delete_chat(db_session, bob, chat.id)
    with pytest.raises(history.ChatNotFound):
        history.add_message(db_session, bob, chat.id, "hi", "user")
    with pytest.raises(history.ChatNotFound):
        history.get_messages(db_session, bob, chat.id)

    assert history.get_chat(db_session, alice, chat.id) is not None


def test_get_chats_orders_by_last_activity(db_session, make_user, clock):
    """Adding a message moves a chat to the top of the list."""
    user_id = make_user()
    older = history.create_chat(db_session, user_id, "Older")
    newer = history.create_chat(db_session, user_id, "Newer")

    assert [c.id for c in history.get_chats(db_session, user_id)] == [newer.id, older.id]

    history.add_message(db_session, user_id, older.id, "bump", "user")
    assert [c.id for c in history.get_chats(db_session, user_id)] == [older.id, newer.id]


def test_get_chats_pagination(db_session, make_user, clock):
    user_id = make_user()
    for i in range(15):
        history.create_chat(db_session, user_id, f"Chat {i}")

    assert len(history.get_chats(db_session, user_id, limit=10, offset=0)) == 10
    page2 = history.get_chats(db_session, user_id, limit=10, offset=10)
    assert len(page2) == 5
    assert page2[-1].title == "Chat 0"


def test_add_message_bumps_updated_at(db_session, make_user, clock):
    user_id = make_user()
    chat = history.create_chat(db_session, user_id)
    before = chat.updated_at

    msg = history.add_message(db_session, user_id, chat.id, "Hello", "user")
    db_session.refresh(chat)

    assert chat.updated_at >= before
    assert chat.updated_at >= msg.created_at


def test_updated_at_never_moves_backwards(db_session, make_user, clock):
    """A clock that jumps back does not rewind the chat or reorder messages."""
    user_id = make_user()
    chat = history.create_chat(db_session, user_id)
    first = history.add_message(db_session, user_id, chat.id, "first", "user")
    stamp = chat.updated_at

    clock.now = clock.now - datetime.timedelta(hours=1)
    second = history.add_message(db_session, user_id, chat.id, "second", "agent", "thinking")
    db_session.refresh(chat)

    assert chat.updated_at >= stamp
    assert second.created_at >= first.created_at
    assert [m.content for m in history.get_messages(db_session, user_id, chat.id)] == ["first", "second"]


def test_messages_keep_insertion_order_with_equal_timestamps(db_session, make_user, clock):
    user_id = make_user()
    chat = history.create_chat(db_session, user_id)
    clock.step = datetime.timedelta(0)

    for text in ["a", "b", "c", "d"]:
        history.add_message(db_session, user_id, chat.id, text, "user")

    messages = history.get_messages(db_session, user_id, chat.id)
    assert [m.content for m in messages] == ["a", "b", "c", "d"]
    assert [m.seq for m in messages] == [0, 1, 2, 3]


def test_add_message_rejects_unknown_sender_and_type(db_session, make_user):
    user_id = make_user()
    chat = history.create_chat(db_session, user_id)

    with pytest.raises(ValueError):
        history.add_message(db_session, user_id, chat.id, "hi", "system")
    with pytest.raises(ValueError):
        history.add_message(db_session, user_id, chat.id, "hi", "agent", "summary")
    assert history.get_messages(db_session, user_id, chat.id) == []


def test_update_chat_title(db_session, make_user, clock):
    user_id = make_user()
    chat = history.create_chat(db_session, user_id)
    before = chat.updated_at

    renamed = history.update_chat_title(db_session, user_id, chat.id, "Learn Go")
    assert renamed.title == "Learn Go"
    assert renamed.updated_at >= before

    with pytest.raises(history.ChatNotFound):
        history.update_chat_title(db_session, user_id, "missing", "x")


def test_delete_chat_removes_messages(db_session, make_user):
    """Deleting a chat also deletes every message in it."""
    user_id = make_user()
    chat = history.create_chat(db_session, user_id)
    history.add_message(db_session, user_id, chat.id, "Hello", "user")
    history.add_message(db_session, user_id, chat.id, "Thinking...", "agent", "thinking")
    chat_id = chat.id

    history.delete_chat(db_session, user_id, chat_id)

    assert history.get_chat(db_session, user_id, chat_id) is None
    remaining = db_session.query(db_models.MessageDB).filter(db_models.MessageDB.chat_id == chat_id).count()
    assert remaining == 0


def test_count_user_messages(db_session, make_user):
    user_id = make_user()
    chat = history.create_chat(db_session, user_id)
    history.add_message(db_session, user_id, chat.id, "What goal would you like to achieve?", "agent")
    assert history.count_user_messages(db_session, user_id, chat.id) == 0

    history.add_message(db_session, user_id, chat.id, "Run a marathon", "user")
    assert history.count_user_messages(db_session, user_id, chat.id) == 1


@pytest.mark.parametrize(
    "text, expected",
    [
        ("  Open a coffee shop  ", "Open a coffee shop"),
        ("", history.DEFAULT_TITLE),
        ("   ", history.DEFAULT_TITLE),
        ("x" * 80, "x" * 50),
    ],
)
def test_make_title(text, expected):
    title = history.make_title(text)
    assert title == expected
    assert len(title) <= history.MAX_TITLE_LENGTH
