import pytest
from pydantic import ValidationError

from chat_core.config.settings import Settings


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for key in ("API_KEY", "MODEL", "CONTEXT", "DRY", "STREAM", "MODERATION", "CONFIG_FILE"):
        monkeypatch.delenv(f"CHAT_CORE_{key}", raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


def test_settings_from_env(clean_env, monkeypatch):
    monkeypatch.setenv("CHAT_CORE_API_KEY", "sk-env-key-123")
    monkeypatch.setenv("CHAT_CORE_DRY", "true")
    monkeypatch.setenv("CHAT_CORE_MODERATION", "lenient")
    s = Settings()
    assert s.api_key == "sk-env-key-123"
    assert s.dry is True
    params = s.conversation_params()
    assert params["moderation"] == "lenient"
    assert "context" not in params


def test_settings_from_yaml_file(clean_env, monkeypatch):
    cfg = clean_env / "chat.yaml"
    cfg.write_text("model: gpt-4\ncontext: Be terse.\nstream: true\n", encoding="utf-8")
    monkeypatch.setenv("CHAT_CORE_CONFIG_FILE", str(cfg))
    monkeypatch.setenv("CHAT_CORE_STREAM", "false")
    s = Settings()
    assert s.model == "gpt-4"
    assert s.conversation_params()["context"] == "Be terse."
    # 环境变量优先于配置文件
    assert s.stream is False


def test_settings_validation(clean_env, monkeypatch):
    monkeypatch.setenv("CHAT_CORE_API_KEY", "short")
    with pytest.raises(ValidationError):
        Settings()
    monkeypatch.setenv("CHAT_CORE_API_KEY", "sk-env-key-123")
    monkeypatch.setenv("CHAT_CORE_MODERATION", "sometimes")
    with pytest.raises(ValidationError):
        Settings()
