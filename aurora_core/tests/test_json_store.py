import tempfile
import time
from pathlib import Path

import pytest

from aurora_core.infrastructure.storage.json_store import JsonConversationStore
from aurora_core.domain.exceptions import ConversationNotFoundError
from aurora_core.prompts import load_default_system_prompt


def test_json_store_create_and_messages():
    with tempfile.TemporaryDirectory() as d:
        store = JsonConversationStore(root=Path(d) / ".storage")
        conv = store.create_conversation("dev-1", {"topic": "weather"})
        m1 = store.add_message(conv.id, "user", "hi")
        m2 = store.add_message(conv.id, "assistant", "hello", metadata={"source": "test"})
        msgs = store.get_messages(conv.id)
        assert [m.id for m in msgs] == [m1.id, m2.id]
        assert msgs[1].metadata == {"source": "test"}
        assert store.get_conversation(conv.id).metadata == {"topic": "weather"}


def test_json_store_message_image_roundtrip():
    with tempfile.TemporaryDirectory() as d:
        store = JsonConversationStore(root=Path(d) / ".storage")
        conv = store.create_conversation("dev-1")
        store.add_message(conv.id, "user", "what is this?", image="aGVsbG8=")
        history = store.get_conversation_history(conv.id)
        assert history[0].image == "aGVsbG8="


def test_json_store_history_limit_keeps_latest():
    with tempfile.TemporaryDirectory() as d:
        store = JsonConversationStore(root=Path(d) / ".storage")
        conv = store.create_conversation("dev-1")
        for i in range(5):
            store.add_message(conv.id, "user" if i % 2 == 0 else "assistant", f"msg {i}")
        history = store.get_conversation_history(conv.id, limit=3)
        assert [h.content for h in history] == ["msg 2", "msg 3", "msg 4"]
        assert len(store.get_conversation_history(conv.id)) == 5
        assert store.get_conversation_history(conv.id, limit=0) == []


def test_json_store_updated_at_bumps_on_append_and_metadata():
    with tempfile.TemporaryDirectory() as d:
        store = JsonConversationStore(root=Path(d) / ".storage")
        conv = store.create_conversation("dev-1")
        store.add_message(conv.id, "user", "hi")
        after_append = store.get_conversation(conv.id).updated_at
        assert after_append >= conv.updated_at
        updated = store.update_conversation_metadata(conv.id, {"mood": "happy"})
        assert updated.updated_at >= after_append
        assert store.get_conversation(conv.id).metadata == {"mood": "happy"}


def test_json_store_get_or_create_returns_latest():
    with tempfile.TemporaryDirectory() as d:
        store = JsonConversationStore(root=Path(d) / ".storage")
        first = store.get_or_create_conversation("dev-1")
        assert store.get_or_create_conversation("dev-1").id == first.id
        time.sleep(0.01)
        second = store.create_conversation("dev-1")
        assert store.get_or_create_conversation("dev-1").id == second.id
        time.sleep(0.01)
        store.add_message(first.id, "user", "back to the first one")
        assert store.get_or_create_conversation("dev-1").id == first.id
        assert store.get_or_create_conversation("dev-2").id not in {first.id, second.id}


def test_json_store_conversations_by_device():
    with tempfile.TemporaryDirectory() as d:
        store = JsonConversationStore(root=Path(d) / ".storage")
        a = store.create_conversation("dev-1")
        time.sleep(0.01)
        b = store.create_conversation("dev-1")
        store.create_conversation("dev-2")
        convs = store.get_conversations_by_device("dev-1")
        assert [c.id for c in convs] == [b.id, a.id]


def test_json_store_missing_conversation():
    with tempfile.TemporaryDirectory() as d:
        store = JsonConversationStore(root=Path(d) / ".storage")
        with pytest.raises(ConversationNotFoundError) as exc:
            store.get_conversation("c-missing")
        assert exc.value.code == "CONVERSATION_NOT_FOUND"
        with pytest.raises(ConversationNotFoundError):
            store.add_message("c-missing", "user", "hi")
        with pytest.raises(ConversationNotFoundError):
            store.get_conversation("../devices")


def test_json_store_system_prompt_default_and_update():
    with tempfile.TemporaryDirectory() as d:
        store = JsonConversationStore(root=Path(d) / ".storage")
        assert store.get_system_prompt("dev/with:odd chars") == load_default_system_prompt()
        store.update_system_prompt("dev/with:odd chars", "Be a pirate.")
        assert store.get_system_prompt("dev/with:odd chars") == "Be a pirate."
        # 其他设备不受影响
        assert store.get_system_prompt("dev-2") == load_default_system_prompt()
        reopened = JsonConversationStore(root=Path(d) / ".storage")
        assert reopened.get_device_settings("dev/with:odd chars").system_prompt == "Be a pirate."
