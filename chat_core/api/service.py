"""对外 API 服务模块。

提供简化的函数接口供上层应用（CLI / Web）调用，返回普通字典。
"""

from typing import Any, Dict, List, Optional

from chat_core.config.settings import settings
from chat_core.domain.conversation import Conversation
from chat_core.domain.message import Message
from chat_core.infrastructure.logging.logger import logger


_conversation: Optional[Conversation] = None


def get_default_conversation() -> Conversation:
    """获取默认的会话实例（单例），配置来自 settings。"""
    global _conversation
    if _conversation is None:
        _conversation = Conversation(settings.conversation_params())
    return _conversation


def reset_conversation() -> None:
    """丢弃默认会话，下次调用时按最新 settings 重新创建。"""
    global _conversation
    _conversation = None


def _message_to_dict(message: Message) -> Dict[str, Any]:
    return {
        "id": message.id,
        "role": message.role,
        "content": message.content,
        "state": message.state.value,
    }


def _usage(conversation: Conversation, message: Message) -> Dict[str, Any]:
    return {
        "size": message.size,
        "cost": message.cost,
        "conversation_size": conversation.get_size(),
        "conversation_cost": conversation.get_cost(),
        "cumulative_size": conversation.get_cumulative_size(),
        "cumulative_cost": conversation.get_cumulative_cost(),
    }


async def run_prompt(prompt: str, stream: Optional[bool] = None) -> Dict[str, Any]:
    """发送一条提示并等待完整回复。

    Args:
        prompt: 用户输入内容
        stream: 是否使用流式补全（可选，不提供则使用配置默认值）

    Returns:
        包含会话ID、助手消息以及（show_usage 开启时）使用统计的字典

    Raises:
        各种 domain.exceptions 中定义的异常
    """
    conversation = get_default_conversation()
    options = {} if stream is None else {"stream": stream}
    try:
        message = await conversation.prompt(prompt, options)
        await message.wait_until_stopped()
    except Exception as e:
        logger.error(f"Prompt failed: {e}", extra={"extra": {
            "conversation_id": conversation.id,
            "error": str(e),
        }})
        raise

    result: Dict[str, Any] = {
        "conversation_id": conversation.id,
        "assistant_message": _message_to_dict(message),
    }
    if settings.show_usage:
        result["usage"] = _usage(conversation, message)
    return result


def list_messages(include_context: bool = False) -> List[Dict[str, Any]]:
    """列出默认会话中的消息。"""
    conversation = get_default_conversation()
    return [_message_to_dict(m) for m in conversation.get_messages(include_context)]
