"""外部服务集成层。

该包下的模块负责：
- 定义补全 / 审核客户端协议 (base)。
- 维护模型单价与 Provider 配置 (registry)。
- 提供 OpenAI 兼容的具体实现 (openai_client、moderation_client)。
- 提供 dry run 模拟补全 (dry)。
"""

from typing import Optional

from chat_core.config.settings import settings
from chat_core.providers.base import ChatCompletionClient, ModerationClient, StreamHandle
from chat_core.providers.moderation_client import OpenAIModerationClient
from chat_core.providers.openai_client import OpenAIChatClient


def create_completion_client(name: Optional[str] = None) -> ChatCompletionClient:
    """根据名称创建补全客户端，目前只有 OpenAI 兼容实现。"""

    provider_name = (name or "openai").lower()
    if provider_name != "openai":
        raise KeyError(f"Unknown provider: {name!r}")
    return OpenAIChatClient(settings)


def create_moderation_client(name: Optional[str] = None) -> ModerationClient:
    provider_name = (name or "openai").lower()
    if provider_name != "openai":
        raise KeyError(f"Unknown provider: {name!r}")
    return OpenAIModerationClient(settings)


__all__ = [
    "ChatCompletionClient",
    "ModerationClient",
    "StreamHandle",
    "OpenAIChatClient",
    "OpenAIModerationClient",
    "create_completion_client",
    "create_moderation_client",
]
