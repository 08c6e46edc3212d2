"""统一的对话与结果数据模型。

本模块定义了会话引擎与补全客户端之间共享的标准数据结构：

- ChatMessage: 发给补全服务的一条 role/content 消息投影。
- ChatResult: 从补全服务解析后的非流式响应结果。
- ChatUsage: 服务端返回的 token 统计。

所有 Provider 适配器都只依赖这些模型，
并负责在各自的 API JSON 和这些模型之间做转换。
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Optional


# 消息角色（与 OpenAI chat/completions 的 role 字段对应）
Role = Literal["system", "user", "assistant"]

ROLES = ("system", "user", "assistant")


class MessageState(str, Enum):
    """消息的流式状态。

    只有流式生成的 assistant 消息会经历 idle -> streaming -> stopped，
    其他消息创建时即为 stopped。
    """

    IDLE = "idle"
    STREAMING = "streaming"
    STOPPED = "stopped"


@dataclass
class ChatMessage:
    """发给补全服务的一条消息（仅 role 与 content）。"""

    role: Role
    content: str

    def to_payload(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class ChatUsage:
    """Provider 返回的 token 统计信息（统一格式）。"""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class ChatChoice:
    """单个候选回答（通常只用 index=0 的一条）。"""

    index: int
    message: ChatMessage
    finish_reason: Optional[str] = None


@dataclass
class ChatResult:
    """一次非流式补全调用的结果。

    - model: 实际使用的模型名。
    - choices: 一个或多个候选回答。
    - usage: 可选的 token 使用统计。
    - raw: 原始响应 JSON，用于调试或日志记录。
    """

    model: str
    choices: List[ChatChoice] = field(default_factory=list)
    usage: Optional[ChatUsage] = None
    raw: Optional[Dict[str, Any]] = None

    @property
    def content(self) -> str:
        if not self.choices:
            return ""
        return self.choices[0].message.content or ""
