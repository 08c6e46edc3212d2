import pytest

from chat_core.providers.registry import get_model_config
from chat_core.utils.tokens import get_message_cost, get_message_size


def test_model_lookup_uses_longest_prefix():
    assert get_model_config("gpt-4").name == "gpt-4"
    assert get_model_config("gpt-4-0613").name == "gpt-4"
    assert get_model_config("gpt-4-32k-0613").name == "gpt-4-32k"
    assert get_model_config("gpt-4o-mini-2024-07-18").name == "gpt-4o-mini"
    assert get_model_config("GPT-3.5-Turbo").name == "gpt-3.5-turbo"
    assert get_model_config("gpt-40") is None
    assert get_model_config("llama-3") is None


def test_message_size():
    assert get_message_size("", "gpt-4") == 0
    short = get_message_size("Hello", "gpt-4")
    assert short > 0
    assert get_message_size("Hello there, how are you doing today?", "gpt-4") > short
    # 未知模型退回默认编码
    assert get_message_size("Hello", "my-local-model") == short


def test_message_cost():
    assert get_message_cost(1000, "gpt-4", "prompt") == pytest.approx(0.03)
    assert get_message_cost(1000, "gpt-4", "completion") == pytest.approx(0.06)
    assert get_message_cost(500, "gpt-3.5-turbo", "completion") == pytest.approx(0.001)
    assert get_message_cost(1000, "unknown-model", "prompt") == 0
    assert get_message_cost(0, "gpt-4", "prompt") == 0
