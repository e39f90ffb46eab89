import tempfile
from pathlib import Path

import pytest

from aurora_core.agents.agent_loop import AgentConfig, AgentLoop
from aurora_core.agents.guard import ConversationGuard
from aurora_core.agents.orchestrator import TurnOrchestrator
from aurora_core.api import service
from aurora_core.domain.exceptions import ConversationNotFoundError
from aurora_core.domain.models import ChatResult, ChatChoice, ChatMessage
from aurora_core.infrastructure.storage.json_store import JsonConversationStore
from aurora_core.tools.registry import ToolRegistry


class FakeProvider:
    name = "fake"

    def chat(self, req):
        msg = ChatMessage(role="assistant", content="Hello from Aurora")
        return ChatResult(provider="fake", model="aurora-chat", choices=[ChatChoice(index=0, message=msg)], raw={})


@pytest.fixture
def wired_service(monkeypatch):
    with tempfile.TemporaryDirectory() as d:
        store = JsonConversationStore(root=Path(d) / ".storage")
        loop = AgentLoop(
            provider_client=FakeProvider(),
            tool_registry=ToolRegistry(store),
            config=AgentConfig(provider="fake", model="aurora-chat"),
        )
        orch = TurnOrchestrator(store=store, agent_loop=loop, guard=ConversationGuard())
        monkeypatch.setattr(service, "_store", store)
        monkeypatch.setattr(service, "_orchestrator", orch)
        yield store


def test_generate_text_returns_wire_shape(wired_service):
    out = service.generate_text("dev-1", "hi there")
    assert out["text"] == "Hello from Aurora"
    assert out["conversationId"].startswith("c-")
    assert out["messageId"].startswith("m-")
    assert "error" not in out

    msgs = service.get_messages(out["conversationId"])
    assert [m["role"] for m in msgs] == ["user", "assistant"]
    assert msgs[1]["id"] == out["messageId"]


def test_generate_text_error_shape(wired_service):
    out = service.generate_text("dev-1", "hi", conversation_id="c-missing")
    assert out["conversationId"] == ""
    assert out["messageId"] == ""
    assert out["error"] == "CONVERSATION_NOT_FOUND"


def test_conversation_operations(wired_service):
    created = service.create_conversation("dev-1", {"topic": "stars"})
    assert created["device_id"] == "dev-1"
    assert created["metadata"] == {"topic": "stars"}
    assert service.get_or_create_conversation("dev-1")["id"] == created["id"]
    assert service.get_conversation(created["id"])["id"] == created["id"]
    assert [c["id"] for c in service.get_conversations_by_device("dev-1")] == [created["id"]]
    assert service.get_messages(created["id"]) == []


def test_get_conversation_missing_raises(wired_service):
    with pytest.raises(ConversationNotFoundError):
        service.get_conversation("c-missing")
