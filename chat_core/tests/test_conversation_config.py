import pytest

from chat_core.domain.conversation_config import DEFAULT_CONTEXT, ConversationConfig
from chat_core.domain.exceptions import ConfigValidationError


def test_defaults_in_dry_mode():
    cfg = ConversationConfig(dry=True)
    assert cfg.model == "gpt-3.5-turbo"
    assert cfg.context == DEFAULT_CONTEXT
    assert cfg.moderation == "strict"
    assert cfg.stream is False
    assert cfg.is_moderation_enabled
    assert cfg.is_moderation_strict


def test_api_key_required_unless_dry():
    with pytest.raises(ConfigValidationError) as exc:
        ConversationConfig()
    assert exc.value.code == "CONFIG_VALIDATION_ERROR"
    ConversationConfig(api_key="sk-test-key")


def test_invalid_values_fail_construction():
    with pytest.raises(ConfigValidationError) as exc:
        ConversationConfig(dry=True, moderation="sometimes")
    assert "moderation" in exc.value.extra["fields"]

    with pytest.raises(ConfigValidationError):
        ConversationConfig(dry=True, model="   ")

    with pytest.raises(ConfigValidationError):
        ConversationConfig(dry=True, messages=[])


def test_context_is_normalized():
    assert ConversationConfig(dry=True, context="  Be terse.  ").context == "Be terse."
    assert ConversationConfig(dry=True, context=None).context == ""


def test_pass_through_options():
    cfg = ConversationConfig(dry=True, model="gpt-4", temperature=0.2, max_tokens=64)
    assert cfg.completion_options == {"model": "gpt-4", "temperature": 0.2, "max_tokens": 64}
    params = cfg.as_params()
    assert params["temperature"] == 0.2
    assert params["model"] == "gpt-4"
    assert params["dry"] is True


def test_config_is_frozen():
    cfg = ConversationConfig(dry=True)
    with pytest.raises(Exception):
        cfg.model = "gpt-4"


def test_from_merge_keeps_previous_fields():
    cfg = ConversationConfig(dry=True, temperature=0.5, context="A")
    merged = ConversationConfig.from_merge(cfg, {"model": "gpt-4"})
    assert merged.model == "gpt-4"
    assert merged.context == "A"
    assert merged.completion_options["temperature"] == 0.5


def test_from_replace_discards_previous_fields():
    replaced = ConversationConfig.from_replace({"dry": True, "model": "gpt-4"})
    assert "temperature" not in replaced.completion_options
    assert replaced.context == DEFAULT_CONTEXT


def test_invalid_merge_leaves_original_untouched():
    cfg = ConversationConfig(dry=True, model="gpt-4")
    with pytest.raises(ConfigValidationError):
        ConversationConfig.from_merge(cfg, {"dry": False})
    assert cfg.model == "gpt-4"
    assert cfg.dry is True
