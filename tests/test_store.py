"""Tests for the conversation store."""

import pytest
from sqlalchemy import inspect
from sqlalchemy.exc import IntegrityError

from portfolio_chat import init_db
from portfolio_chat.db import make_engine
from portfolio_chat.store import ConversationStore


def test_create_and_get_conversation(session_factory) -> None:
    with session_factory() as db:
        store = ConversationStore(db)
        conv = store.create_conversation(session_id="sess-1", context={"userAgent": "pytest"})
        db.commit()
        conv_id = conv.id

    with session_factory() as db:
        loaded = ConversationStore(db).get_conversation(conv_id)
        assert loaded is not None
        assert loaded.session_id == "sess-1"
        assert loaded.context == {"userAgent": "pytest"}
        assert loaded.messages == []


def test_generated_session_id(session_factory) -> None:
    with session_factory() as db:
        conv = ConversationStore(db).create_conversation()
        assert conv.session_id
        assert conv.id


def test_get_unknown_conversation_is_none(session_factory) -> None:
    with session_factory() as db:
        assert ConversationStore(db).get_conversation("does-not-exist") is None


def test_get_by_session(session_factory) -> None:
    with session_factory() as db:
        store = ConversationStore(db)
        conv = store.create_conversation(session_id="sess-2")
        db.commit()
        assert store.get_by_session("sess-2").id == conv.id
        assert store.get_by_session("other") is None


def test_session_id_is_unique(session_factory) -> None:
    with session_factory() as db:
        store = ConversationStore(db)
        store.create_conversation(session_id="dup")
        with pytest.raises(IntegrityError):
            store.create_conversation(session_id="dup")


def test_messages_keep_insertion_order(session_factory) -> None:
    with session_factory() as db:
        store = ConversationStore(db)
        conv = store.create_conversation()
        store.append_message(conv.id, "assistant", "hello", message_type="decision_tree",
                             meta={"mode": "tree", "nextNodeId": "welcome"})
        store.append_message(conv.id, "user", "question")
        store.append_message(conv.id, "assistant", "answer")
        db.commit()
        conv_id = conv.id

    with session_factory() as db:
        loaded = ConversationStore(db).get_conversation(conv_id)
        assert [m.content for m in loaded.messages] == ["hello", "question", "answer"]
        assert loaded.messages[0].message_type == "decision_tree"
        assert loaded.messages[0].meta == {"mode": "tree", "nextNodeId": "welcome"}
        assert loaded.messages[1].meta is None


def test_recent_messages_window_oldest_first(session_factory) -> None:
    with session_factory() as db:
        store = ConversationStore(db)
        conv = store.create_conversation()
        for i in range(9):
            store.append_message(conv.id, "user" if i % 2 else "assistant", f"m{i}")
        db.commit()

        recent = store.recent_messages(conv.id, limit=6)
        assert [m.content for m in recent] == ["m3", "m4", "m5", "m6", "m7", "m8"]


def test_append_rejects_unknown_role_and_type(session_factory) -> None:
    with session_factory() as db:
        store = ConversationStore(db)
        conv = store.create_conversation()
        with pytest.raises(ValueError, match="role"):
            store.append_message(conv.id, "system", "nope")
        with pytest.raises(ValueError, match="message type"):
            store.append_message(conv.id, "user", "nope", message_type="image")


def test_init_db_uses_database_url(tmp_path, monkeypatch) -> None:
    url = f"sqlite:///{tmp_path / 'from-env.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    init_db()

    engine = make_engine(url)
    try:
        tables = set(inspect(engine).get_table_names())
    finally:
        engine.dispose()
    assert {"conversations", "messages", "knowledge_entries"} <= tables
