"""外部协作方接口。

Conversation 不直接依赖具体厂商的 HTTP 实现，而是依赖这里的协议：

- ChatCompletionClient: 发送 role/content 列表，返回完整结果或增量流。
- ModerationClient: 对一段文本做内容审核，返回触发的标记列表。
- StreamHandle: 惰性、有限的文本增量序列，可提前关闭。

这样可以在不改会话引擎的前提下接入更多厂商，测试中也可以直接注入假实现。
"""

from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, Union, runtime_checkable

from chat_core.domain.models import ChatMessage, ChatResult


RequestOptions = Dict[str, Any]


@runtime_checkable
class StreamHandle(Protocol):
    """流式补全句柄：逐个产出 content 增量，结束即终止信号。"""

    def __aiter__(self) -> AsyncIterator[str]:
        ...

    async def aclose(self) -> None:
        ...


class ChatCompletionClient(Protocol):
    """补全服务客户端协议。

    options 中 stream=True 时返回 StreamHandle（HTTP 状态已校验、尚未读取内容），
    否则返回 ChatResult。options 的其余字段（model、temperature 等）原样转发。
    调用失败抛出 TransportError 子类。
    """

    name: str

    async def create_completion(
        self,
        messages: List[ChatMessage],
        options: Dict[str, Any],
        request_options: Optional[RequestOptions] = None,
        *,
        api_key: Optional[str] = None,
    ) -> Union[ChatResult, StreamHandle]:
        ...


class ModerationClient(Protocol):
    """审核服务客户端协议。"""

    async def moderate(
        self,
        content: str,
        api_key: Optional[str],
        request_options: Optional[RequestOptions] = None,
    ) -> List[str]:
        ...
