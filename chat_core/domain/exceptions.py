"""统一业务异常模型。

所有跨模块抛出的业务级错误都继承自 BusinessError，
便于在 API 层或 UI 层做统一捕获与用户提示。

分类：
- 消息准入：EmptyUserContent / AdjacentRoleViolation / ModerationViolation。
- 历史定位：MessageNotFound / NoPriorUserMessage。
- 外部服务：TransportError 及其子类 NetworkError / ApiError / RateLimitError。
- 配置：ConfigValidationError。
"""

from typing import List, Optional


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "EMPTY_USER_CONTENT"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 message_id、flags 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class EmptyUserContent(BusinessError):
    """用户消息去除首尾空白后为空。"""

    def __init__(self, message: str = "User message content cannot be empty."):
        super().__init__(code="EMPTY_USER_CONTENT", message=message)


class AdjacentRoleViolation(BusinessError):
    """相邻两条非 system 消息角色相同。"""

    def __init__(self, role: str):
        super().__init__(
            code="ADJACENT_ROLE_VIOLATION",
            message=f"Cannot add two consecutive messages with the role {role!r}.",
            role=role,
        )


class ModerationViolation(BusinessError):
    """strict 审核策略下消息触发了审核标记。"""

    def __init__(self, flags: List[str]):
        self.flags = list(flags)
        super().__init__(
            code="MODERATION_VIOLATION",
            message=f"Message was flagged by moderation: {', '.join(self.flags)}",
            flags=self.flags,
        )


class MessageNotFound(BusinessError):
    """按 ID 找不到消息。"""

    def __init__(self, message_id: str):
        super().__init__(
            code="MESSAGE_NOT_FOUND",
            message=f'Message with ID "{message_id}" not found.',
            http_status=404,
            message_id=message_id,
        )


class NoPriorUserMessage(BusinessError):
    """从 assistant 消息重新生成时，前面没有可用的 user 消息。"""

    def __init__(self, message_id: str):
        super().__init__(
            code="NO_PRIOR_USER_MESSAGE",
            message=f"Could not find a previous user message to reprompt from ({message_id}).",
            message_id=message_id,
        )


class TransportError(BusinessError):
    """外部服务（补全/审核）调用失败的基类，原样向上抛出。"""


class NetworkError(TransportError):
    """网络层错误，例如连接失败、超时等。"""


class ApiError(TransportError):
    """第三方 API 返回非 2xx/429 错误时抛出。"""


class RateLimitError(TransportError):
    """Provider 限流错误，由上层负责重试/退避策略。"""


class ValidationError(BusinessError):
    """参数或配置校验失败。"""


class ConfigValidationError(ValidationError):
    """ConversationConfig 构造或替换时校验失败，不会应用任何部分配置。"""

    def __init__(self, message: str, fields: Optional[List[str]] = None):
        super().__init__(code="CONFIG_VALIDATION_ERROR", message=message, fields=list(fields or []))
