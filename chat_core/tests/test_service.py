import pytest

from chat_core.api import service
from chat_core.domain.exceptions import AdjacentRoleViolation
from chat_core.providers import dry


class SettingsStub:
    show_usage = True

    def conversation_params(self):
        return {"dry": True, "context": "ctx", "moderation": "off"}


@pytest.fixture(autouse=True)
def dry_service(monkeypatch):
    monkeypatch.setattr(dry, "DRY_RESPONSE_DELAY", 0)
    monkeypatch.setattr(dry, "DRY_STREAM_DELAY", 0)
    monkeypatch.setattr("chat_core.api.service.settings", SettingsStub())
    service.reset_conversation()
    yield
    service.reset_conversation()


@pytest.mark.asyncio
async def test_run_prompt_batched():
    result = await service.run_prompt("Hello")
    conversation = service.get_default_conversation()
    assert result["conversation_id"] == conversation.id
    assert result["assistant_message"]["content"] == "Hello"
    assert result["assistant_message"]["state"] == "stopped"
    assert result["usage"]["cumulative_size"] > 0
    assert [m["role"] for m in service.list_messages()] == ["user", "assistant"]
    assert service.list_messages(include_context=True)[0]["content"] == "ctx"


@pytest.mark.asyncio
async def test_run_prompt_streamed_waits_for_completion():
    result = await service.run_prompt("one two three", stream=True)
    assert result["assistant_message"]["content"] == "one two three"
    assert result["assistant_message"]["state"] == "stopped"


@pytest.mark.asyncio
async def test_run_prompt_propagates_errors():
    conversation = service.get_default_conversation()
    await conversation.add_user_message("pending")
    with pytest.raises(AdjacentRoleViolation):
        await service.run_prompt("again")


def test_reset_conversation_creates_new_instance():
    first = service.get_default_conversation()
    service.reset_conversation()
    assert service.get_default_conversation() is not first
