import pytest

from chat_core.providers import create_completion_client, create_moderation_client, dry
from chat_core.providers.moderation_client import OpenAIModerationClient
from chat_core.providers.openai_client import OpenAIChatClient


class DummySettings:
    api_key = "sk-test-key"
    base_url = "https://api.example.com/v1"
    http_timeout = 1.0
    model = "gpt-4"


def test_create_clients_default(monkeypatch):
    monkeypatch.setattr("chat_core.providers.settings", DummySettings())
    assert isinstance(create_completion_client(), OpenAIChatClient)
    assert isinstance(create_moderation_client("OpenAI"), OpenAIModerationClient)


def test_create_client_unknown_provider():
    with pytest.raises(KeyError):
        create_completion_client("glm")
    with pytest.raises(KeyError):
        create_moderation_client("kimi")


@pytest.mark.asyncio
async def test_dry_completion_streams_words(monkeypatch):
    monkeypatch.setattr(dry, "DRY_STREAM_DELAY", 0)
    parts = [p async for p in dry.create_dry_chat_completion("Hello  big\nworld")]
    assert parts == ["Hello", "  big", "\nworld"]
    assert [p async for p in dry.create_dry_chat_completion("")] == []
