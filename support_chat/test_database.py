"""
Tests for the transcript store.
Validates: id allocation, ordered reads, existence checks, unknown-conversation
errors and cascading deletes.
"""

from datetime import datetime, timedelta, timezone

import pytest

from support_chat import database
from support_chat.database import DBConversation, DBMessage, TranscriptStore, create_db_engine, init_db
from support_chat.exceptions import UnknownConversation
from support_chat.models import Message, Sender


class TestConversations:
    def test_create_returns_unique_ids(self, store):
        ids = [store.create_conversation() for _ in range(5)]
        assert len(set(ids)) == 5
        assert ids == sorted(ids)

    def test_new_conversation_exists_and_is_empty(self, store):
        conversation_id = store.create_conversation()
        assert store.conversation_exists(conversation_id) is True
        assert store.list_messages(conversation_id) == []

    def test_unknown_conversation_does_not_exist(self, store):
        assert store.conversation_exists(999) is False

    def test_store_persists_to_file(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'chat.db'}"
        engine = create_db_engine(url)
        init_db(engine)
        conversation_id = TranscriptStore(engine).create_conversation()
        engine.dispose()

        reopened = create_db_engine(url)
        init_db(reopened)
        assert TranscriptStore(reopened).conversation_exists(conversation_id)
        reopened.dispose()


class TestMessages:
    def test_append_returns_persisted_record(self, store):
        conversation_id = store.create_conversation()
        message = store.append_message(conversation_id, Sender.USER, "Where is my order?")
        assert isinstance(message, Message)
        assert message.id > 0
        assert message.conversation_id == conversation_id
        assert message.sender == Sender.USER
        assert message.text == "Where is my order?"
        assert message.created_at is not None

    def test_append_then_list_keeps_order(self, store):
        conversation_id = store.create_conversation()
        texts = [f"message {i}" for i in range(12)]
        for i, text in enumerate(texts):
            store.append_message(conversation_id, Sender.USER if i % 2 == 0 else Sender.ASSISTANT, text)

        listed = store.list_messages(conversation_id)
        assert [m.text for m in listed] == texts
        assert [m.sender for m in listed][:2] == [Sender.USER, Sender.ASSISTANT]

    def test_order_follows_creation_time_not_id(self, store, monkeypatch):
        """A row inserted later with an earlier timestamp must be listed first."""
        conversation_id = store.create_conversation()
        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        stamps = iter([base + timedelta(seconds=10), base])
        monkeypatch.setattr(database, "_utcnow", lambda: next(stamps))

        store.append_message(conversation_id, Sender.USER, "stamped later")
        store.append_message(conversation_id, Sender.USER, "stamped earlier")

        assert [m.text for m in store.list_messages(conversation_id)] == ["stamped earlier", "stamped later"]

    def test_append_bumps_conversation_updated_at(self, store, monkeypatch):
        conversation_id = store.create_conversation()
        later = datetime(2030, 6, 1, 12, 0, tzinfo=timezone.utc)
        monkeypatch.setattr(database, "_utcnow", lambda: later)

        message = store.append_message(conversation_id, Sender.USER, "any update?")

        db = store._session_factory()
        try:
            conversation = db.get(DBConversation, conversation_id)
            assert conversation.updated_at == message.created_at
            assert conversation.updated_at > conversation.created_at
        finally:
            db.close()

    def test_any_sender_sequence_is_valid(self, store):
        conversation_id = store.create_conversation()
        store.append_message(conversation_id, Sender.USER, "one")
        store.append_message(conversation_id, Sender.USER, "two")
        assert len(store.list_messages(conversation_id)) == 2

    def test_conversations_are_isolated(self, store):
        first = store.create_conversation()
        second = store.create_conversation()
        store.append_message(first, Sender.USER, "first")
        store.append_message(second, Sender.USER, "second")
        assert [m.text for m in store.list_messages(first)] == ["first"]
        assert [m.text for m in store.list_messages(second)] == ["second"]

    def test_messages_are_immutable(self, store):
        conversation_id = store.create_conversation()
        message = store.append_message(conversation_id, Sender.USER, "hello")
        with pytest.raises(Exception):
            message.text = "changed"


class TestErrors:
    def test_append_to_unknown_conversation(self, store):
        with pytest.raises(UnknownConversation):
            store.append_message(42, Sender.USER, "hello")

    def test_list_unknown_conversation(self, store):
        with pytest.raises(UnknownConversation):
            store.list_messages(42)

    def test_append_empty_text_is_rejected(self, store):
        conversation_id = store.create_conversation()
        with pytest.raises(ValueError):
            store.append_message(conversation_id, Sender.USER, "")
        assert store.list_messages(conversation_id) == []


class TestDelete:
    def test_delete_cascades_to_messages(self, store):
        conversation_id = store.create_conversation()
        store.append_message(conversation_id, Sender.USER, "hello")
        store.append_message(conversation_id, Sender.ASSISTANT, "hi there")

        assert store.delete_conversation(conversation_id) is True
        assert store.conversation_exists(conversation_id) is False

        db = store._session_factory()
        try:
            remaining = db.query(DBMessage).filter(DBMessage.conversation_id == conversation_id).count()
        finally:
            db.close()
        assert remaining == 0

    def test_delete_unknown_conversation(self, store):
        assert store.delete_conversation(7) is False
