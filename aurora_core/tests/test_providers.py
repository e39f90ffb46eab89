import pytest

from aurora_core.providers import create_provider
from aurora_core.providers.openrouter_client import OpenRouterClient
from aurora_core.providers.registry import get_provider_config


class DummySettings:
    default_provider = "openrouter"
    openrouter_api_key = "sk-or-test-key"
    http_timeout = 1.0
    openrouter_base_url = "https://openrouter.ai/api/v1"


def test_create_provider_default(monkeypatch):
    monkeypatch.setattr("aurora_core.providers.settings", DummySettings())
    provider = create_provider()
    assert isinstance(provider, OpenRouterClient)
    assert provider.name == "openrouter"


def test_create_provider_explicit_case_insensitive(monkeypatch):
    monkeypatch.setattr("aurora_core.providers.settings", DummySettings())
    provider = create_provider("OpenRouter")
    assert isinstance(provider, OpenRouterClient)


def test_create_provider_unknown(monkeypatch):
    monkeypatch.setattr("aurora_core.providers.settings", DummySettings())
    with pytest.raises(KeyError):
        create_provider("kimi")


def test_registry_maps_logical_model():
    cfg = get_provider_config("openrouter")
    assert cfg.models["aurora-chat"].provider_model == "x-ai/grok-4-fast"
    assert cfg.models["aurora-chat"].supports_vision
