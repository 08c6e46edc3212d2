"""Chat Core 顶层包。

该包提供对话/会话引擎的核心实现，
包括消息历史与轮次约束、流式/非流式补全请求、
增量内容物化，以及单条消息与累计的 token 数和费用统计。
"""

from chat_core.domain.conversation import Conversation
from chat_core.domain.conversation_config import ConversationConfig
from chat_core.domain.message import Message

__all__ = ["Conversation", "ConversationConfig", "Message"]
