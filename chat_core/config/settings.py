"""配置管理模块。

支持从环境变量（前缀 CHAT_CORE_）、.env 以及 config.yaml 加载配置。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("CHAT_CORE_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class Settings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- 会话默认值 ----
    api_key: Optional[str] = Field(default=None, description="补全/审核服务 API 密钥")
    model: str = Field(default="gpt-3.5-turbo", description="默认模型名")
    context: Optional[str] = Field(default=None, description="默认 system 上下文，为空则使用内置默认值")
    dry: bool = Field(default=False, description="是否模拟回复而不调用外部服务")
    stream: bool = Field(default=False, description="默认是否使用流式补全")
    moderation: Literal["off", "lenient", "strict"] = Field(
        default="strict",
        description="内容审核策略",
    )

    # ---- 传输 ----
    base_url: str = Field(default="https://api.openai.com/v1", description="OpenAI 兼容 API 基础URL")
    http_timeout: float = Field(default=60.0, ge=1.0, description="HTTP 超时时间（秒）")

    # ---- 输出 / 日志 ----
    show_usage: bool = Field(default=False, description="是否在结果中附带 size/cost 统计")
    show_debug: bool = Field(default=False, description="是否输出 DEBUG 级别日志")
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    model_config = SettingsConfigDict(
        env_prefix="CHAT_CORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("api_key")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v and len(v) < 10:
            raise ValueError("API key seems too short")
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )

    def conversation_params(self) -> Dict[str, Any]:
        """转换为 ConversationConfig 的构造参数。"""

        params: Dict[str, Any] = {
            "api_key": self.api_key,
            "model": self.model,
            "dry": self.dry,
            "stream": self.stream,
            "moderation": self.moderation,
        }
        if self.context is not None:
            params["context"] = self.context
        return params


settings = Settings()
