"""会话配置。

ConversationConfig 是一个不可变的 pydantic 模型：

- 固定字段：api_key / model / context / moderation / stream / dry。
- 其余任意字段视为补全请求参数（temperature、max_tokens 等），原样透传给补全客户端。

构造失败统一抛出 ConfigValidationError，不会留下部分生效的配置。
替换与合并分别通过 from_replace / from_merge 两个构造入口完成。
"""

from typing import Any, Dict, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from chat_core.domain.exceptions import ConfigValidationError
from chat_core.providers.registry import DEFAULT_MODEL


ModerationPolicy = Literal["off", "lenient", "strict"]

DEFAULT_CONTEXT = "You are a large language model. Answer as concisely as possible."

# 由会话引擎自行生成的请求字段，不允许通过配置透传
RESERVED_OPTIONS = ("messages",)


class ConversationConfig(BaseModel):
    """单个 Conversation 的配置。

    Attributes:
        api_key: 补全/审核服务密钥；dry 模式下可以为空。
        model: 模型名，用于请求以及 size / cost 估算。
        context: system 消息内容，空字符串表示不插入 system 消息。
        moderation: 审核策略，off 不审核，lenient 仅记录，strict 拒绝被标记的消息。
        stream: 默认是否使用流式补全，可被单次调用覆盖。
        dry: 是否模拟回复而不调用外部服务。
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    context: str = DEFAULT_CONTEXT
    moderation: ModerationPolicy = "strict"
    stream: bool = False
    dry: bool = False

    def __init__(self, **data: Any):
        try:
            super().__init__(**data)
        except PydanticValidationError as e:
            fields = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
            raise ConfigValidationError(message=str(e), fields=fields) from e

    @field_validator("api_key", mode="before")
    @classmethod
    def _normalize_api_key(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip() or None
        return v

    @field_validator("model")
    @classmethod
    def _validate_model(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("model must not be empty")
        return v

    @field_validator("context", mode="before")
    @classmethod
    def _normalize_context(cls, v: Any) -> Any:
        if v is None:
            return ""
        if isinstance(v, str):
            return v.strip()
        return v

    @model_validator(mode="after")
    def _validate_combination(self) -> "ConversationConfig":
        if not self.dry and not self.api_key:
            raise ValueError("api_key is required unless dry mode is enabled")
        for key in RESERVED_OPTIONS:
            if key in (self.model_extra or {}):
                raise ValueError(f"{key!r} cannot be set through the conversation config")
        return self

    # ---- 构造入口 ----

    @classmethod
    def from_replace(cls, params: Mapping[str, Any]) -> "ConversationConfig":
        """丢弃旧配置，仅用 params 构造。"""

        return cls(**dict(params))

    @classmethod
    def from_merge(cls, current: "ConversationConfig", params: Mapping[str, Any]) -> "ConversationConfig":
        """把 params 浅合并到 current 的对外视图上再构造。"""

        return cls(**{**current.as_params(), **dict(params)})

    # ---- 派生视图 ----

    @property
    def is_moderation_enabled(self) -> bool:
        return self.moderation != "off"

    @property
    def is_moderation_strict(self) -> bool:
        return self.moderation == "strict"

    @property
    def completion_options(self) -> Dict[str, Any]:
        """发给补全客户端的透传参数（含 model）。"""

        return {"model": self.model, **(self.model_extra or {})}

    def as_params(self) -> Dict[str, Any]:
        """对外可见的配置字典：透传参数 + 规范化后的固定字段。"""

        return self.model_dump()
