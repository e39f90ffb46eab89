import httpx
import pytest

from aurora_core.providers.openrouter_client import OpenRouterClient
from aurora_core.domain.models import ChatRequest, ChatMessage
from aurora_core.domain.exceptions import ApiError, NetworkError, RateLimitError, ValidationError
from aurora_core.tools.definitions import ToolDef, ToolParam


class SettingsStub:
    openrouter_api_key = "sk-or-test-key"
    http_timeout = 1.0
    openrouter_base_url = "https://openrouter.ai/api/v1"


def _client_returning(status_code, body, captured=None):
    class Resp:
        def __init__(self):
            self.status_code = status_code
            self.text = str(body)

        def json(self):
            return body

    class Client:
        def __init__(self, *a, **kw):
            if captured is not None:
                captured["client_kwargs"] = kw

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def post(self, url, json=None, headers=None, **_):
            if captured is not None:
                captured["url"] = url
                captured["payload"] = json
                captured["headers"] = headers
            return Resp()

    return Client


def _req(**kw):
    return ChatRequest(
        provider="openrouter",
        model="aurora-chat",
        messages=kw.pop("messages", [ChatMessage(role="user", content="hi")]),
        **kw,
    )


def test_openrouter_client_parse_basic(monkeypatch):
    oc = OpenRouterClient(SettingsStub())
    body = {
        "choices": [
            {
                "message": {"role": "assistant", "content": "ok"},
                "finish_reason": "stop",
            }
        ],
        "usage": {"prompt_tokens": 1, "completion_tokens": 1, "total_tokens": 2},
    }
    captured = {}
    monkeypatch.setattr("httpx.Client", _client_returning(200, body, captured))
    res = oc.chat(_req())
    assert res.text == "ok"
    assert res.tool_calls == []
    assert res.usage.total_tokens == 2
    assert captured["url"] == "https://openrouter.ai/api/v1/chat/completions"
    assert captured["headers"]["Authorization"] == "Bearer sk-or-test-key"
    assert captured["payload"]["model"] == "x-ai/grok-4-fast"
    assert captured["client_kwargs"]["trust_env"] is False


def test_openrouter_client_message_payload(monkeypatch):
    oc = OpenRouterClient(SettingsStub())
    captured = {}
    monkeypatch.setattr("httpx.Client", _client_returning(200, {"choices": [], "usage": {}}, captured))
    oc.chat(_req(messages=[
        ChatMessage(role="system", content="You are Aurora."),
        ChatMessage(role="assistant", content="earlier"),
        ChatMessage(role="user", content="what is this?", image="aW1n"),
    ]))
    msgs = captured["payload"]["messages"]
    assert msgs[0] == {"role": "system", "content": "You are Aurora."}
    assert msgs[1]["content"] == [{"type": "text", "text": "earlier"}]
    assert msgs[2]["content"][1] == {
        "type": "image_url",
        "image_url": {"url": "data:image/jpeg;base64,aW1n"},
    }


def test_openrouter_client_tools_payload(monkeypatch):
    oc = OpenRouterClient(SettingsStub())
    tool = ToolDef(
        name="calculator",
        description="do math",
        params={
            "expression": ToolParam(
                name="expression",
                description="Expression",
                required=True,
                schema={"type": "string"},
            )
        },
    )
    captured = {}
    monkeypatch.setattr("httpx.Client", _client_returning(200, {"choices": [], "usage": {}}, captured))
    oc.chat(_req(tools=[tool], tool_choice="auto"))
    payload = captured["payload"]
    assert payload["tool_choice"] == "auto"
    fn = payload["tools"][0]["function"]
    assert fn["name"] == "calculator"
    assert fn["parameters"]["required"] == ["expression"]
    assert fn["parameters"]["properties"]["expression"]["type"] == "string"


def test_openrouter_client_parse_tool_calls(monkeypatch):
    oc = OpenRouterClient(SettingsStub())
    body = {
        "choices": [
            {
                "message": {
                    "role": "assistant",
                    "content": None,
                    "tool_calls": [
                        {
                            "id": "call_1",
                            "type": "function",
                            "function": {"name": "calculator", "arguments": '{"expression": "2+2"}'},
                        },
                        {
                            "id": "call_2",
                            "type": "function",
                            "function": {"name": "calculator", "arguments": "not json"},
                        },
                    ],
                },
            }
        ],
        "usage": {},
    }
    monkeypatch.setattr("httpx.Client", _client_returning(200, body))
    res = oc.chat(_req())
    assert res.text == ""
    calls = res.tool_calls
    assert [c.id for c in calls] == ["call_1", "call_2"]
    assert calls[0].arguments == {"expression": "2+2"}
    assert calls[1].arguments == {"_raw": "not json"}


def test_openrouter_client_rate_limit(monkeypatch):
    oc = OpenRouterClient(SettingsStub())
    monkeypatch.setattr("httpx.Client", _client_returning(429, {}))
    with pytest.raises(RateLimitError):
        oc.chat(_req())


def test_openrouter_client_api_errors(monkeypatch):
    oc = OpenRouterClient(SettingsStub())
    monkeypatch.setattr("httpx.Client", _client_returning(500, {"detail": "boom"}))
    with pytest.raises(ApiError) as exc:
        oc.chat(_req())
    assert exc.value.http_status == 500

    monkeypatch.setattr("httpx.Client", _client_returning(200, {"error": {"message": "model overloaded"}}))
    with pytest.raises(ApiError) as exc:
        oc.chat(_req())
    assert exc.value.message == "model overloaded"


def test_openrouter_client_network_error(monkeypatch):
    oc = OpenRouterClient(SettingsStub())

    class Client:
        def __init__(self, *a, **kw):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def post(self, url, **_):
            raise httpx.ConnectError("connection refused")

    monkeypatch.setattr("httpx.Client", Client)
    with pytest.raises(NetworkError):
        oc.chat(_req())


def test_openrouter_client_requires_key_and_known_model():
    class NoKey(SettingsStub):
        openrouter_api_key = None

    with pytest.raises(ValidationError) as exc:
        OpenRouterClient(NoKey()).chat(_req())
    assert exc.value.code == "MISSING_API_KEY"

    req = ChatRequest(provider="openrouter", model="nope", messages=[ChatMessage(role="user", content="hi")])
    with pytest.raises(ValidationError) as exc:
        OpenRouterClient(SettingsStub()).chat(req)
    assert exc.value.code == "UNKNOWN_MODEL"
