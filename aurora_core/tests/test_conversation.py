from aurora_core.domain.models import ChatMessage, TurnResult
from aurora_core.domain.conversation import Conversation, MessageRecord
from dataclasses import fields
from datetime import datetime, timezone


def test_models_exist():
    cm = ChatMessage(role="user", content="hi", image="abc")
    assert cm.role == "user"
    assert cm.image == "abc"
    assert [f.name for f in fields(ChatMessage)] == ["role", "content", "image", "tool_calls"]
    now = datetime.now(timezone.utc)
    conv = Conversation(id="c1", device_id="dev-1", created_at=now, updated_at=now, metadata={})
    assert conv.id == "c1"
    mr = MessageRecord(id="m1", conversation_id="c1", role="user", content="x", created_at=now)
    assert mr.image is None
    assert mr.metadata == {}


def test_turn_result_to_dict():
    ok = TurnResult(text="hi", conversation_id="c1", message_id="m1")
    assert ok.ok
    assert ok.to_dict() == {"text": "hi", "conversationId": "c1", "messageId": "m1"}
    failed = TurnResult(text="Error: boom", conversation_id="", message_id="", error="PERSISTENCE")
    assert not failed.ok
    assert failed.to_dict()["error"] == "PERSISTENCE"
