"""单条对话消息。

Message 持有 role / content / model，并在流式生成时负责累积增量内容：

- size / cost 每次访问都根据当前 content 重新计算，流式过程中也始终准确。
- 流式消息状态只会经历一次 idle -> streaming -> stopped；
  其余消息创建时即为 stopped。
- 订阅接口返回 disposer，回调按订阅顺序同步执行。
"""

import asyncio
from typing import AsyncIterable, Callable, List, Optional
from uuid import uuid4

from chat_core.domain.exceptions import ValidationError
from chat_core.domain.listeners import ListenerRegistry
from chat_core.domain.models import ROLES, ChatMessage, MessageState, Role
from chat_core.infrastructure.logging.logger import logger
from chat_core.providers import create_moderation_client
from chat_core.providers.base import ModerationClient, RequestOptions
from chat_core.providers.registry import DEFAULT_MODEL
from chat_core.utils.tokens import get_message_cost, get_message_size


MessageListener = Callable[["Message"], None]


class Message:
    """一条 system / user / assistant 消息。

    Attributes:
        id: 创建时生成的唯一 ID，生命周期内不变。
        role: 消息角色。
        model: 计算 size / cost 所依据的模型。
        state: 流式状态，见 MessageState。
        flags: 最近一次审核触发的标记。
        error: 后台流式读取失败时记录的异常。
    """

    def __init__(
        self,
        role: Role,
        content: str = "",
        model: str = DEFAULT_MODEL,
        *,
        state: MessageState = MessageState.STOPPED,
    ):
        if role not in ROLES:
            raise ValidationError(code="INVALID_ROLE", message=f"Invalid message role: {role!r}")
        self.id = f"m-{uuid4().hex}"
        self.role: Role = role
        self.model = model
        self.state = state
        self.flags: List[str] = []
        self.error: Optional[BaseException] = None
        self._content = (content or "").strip()
        self._update_listeners: ListenerRegistry["Message"] = ListenerRegistry()
        self._streaming_update_listeners: ListenerRegistry["Message"] = ListenerRegistry()
        self._streaming_stop_listeners: ListenerRegistry["Message"] = ListenerRegistry()
        self._stream_task: Optional[asyncio.Task] = None
        self._close_task: Optional[asyncio.Future] = None

    @classmethod
    def for_stream(cls, role: Role, model: str = DEFAULT_MODEL) -> "Message":
        """创建一条等待流式内容的空消息（idle 状态）。"""

        return cls(role, "", model, state=MessageState.IDLE)

    def __repr__(self) -> str:
        return f"Message(id={self.id!r}, role={self.role!r}, state={self.state.value!r})"

    # ---- 内容 ----

    @property
    def content(self) -> str:
        return self._content

    @content.setter
    def content(self, value: Optional[str]) -> None:
        value = value or ""
        if value == self._content:
            return
        self._content = value
        self._update_listeners.notify(self)

    @property
    def size(self) -> int:
        return get_message_size(self._content, self.model)

    @property
    def cost(self) -> float:
        kind = "completion" if self.role == "assistant" else "prompt"
        return get_message_cost(self.size, self.model, kind)

    @property
    def is_streaming(self) -> bool:
        return self.state is MessageState.STREAMING

    def to_chat_message(self) -> ChatMessage:
        return ChatMessage(role=self.role, content=self._content)

    # ---- 审核 ----

    async def moderate(
        self,
        api_key: Optional[str],
        request_options: Optional[RequestOptions] = None,
        client: Optional[ModerationClient] = None,
    ) -> List[str]:
        """调用审核服务检查当前内容，返回触发的标记（不修改 content）。"""

        if client is None:
            client = create_moderation_client()
        flags = await client.moderate(self._content, api_key, request_options or {})
        self.flags = list(flags)
        return self.flags

    # ---- 流式 ----

    async def read_content_from_stream(self, stream: AsyncIterable[str]) -> None:
        """消费增量流并追加到 content。

        每个增量触发 update 与 streaming update 事件；流结束（包括失败或取消）时
        切换到 stopped 并只触发一次 streaming stop 事件。
        """

        if self.state is not MessageState.IDLE:
            raise ValidationError(
                code="INVALID_STREAM_STATE",
                message=f"Message {self.id} cannot stream from state {self.state.value!r}",
            )
        self.state = MessageState.STREAMING
        try:
            async for delta in stream:
                if not delta:
                    continue
                self._content += delta
                self._update_listeners.notify(self)
                self._streaming_update_listeners.notify(self)
        except Exception as e:
            self.error = e
            raise
        finally:
            try:
                aclose = getattr(stream, "aclose", None)
                if aclose is not None:
                    await aclose()
            finally:
                self.state = MessageState.STOPPED
                self._streaming_stop_listeners.notify(self)

    def consume_in_background(self, stream: AsyncIterable[str]) -> asyncio.Task:
        """在后台任务中读取 stream，立即返回该任务。"""

        self._stream_task = asyncio.create_task(self.read_content_from_stream(stream))
        self._stream_task.add_done_callback(lambda task: self._on_stream_done(task, stream))
        return self._stream_task

    def _on_stream_done(self, task: asyncio.Task, stream: AsyncIterable[str]) -> None:
        if task.cancelled():
            if self.state is MessageState.IDLE:
                # 任务在开始读取前就被取消：补齐 stopped 状态并释放流
                aclose = getattr(stream, "aclose", None)
                if aclose is not None:
                    self._close_task = asyncio.ensure_future(aclose())
                    self._close_task.add_done_callback(self._on_close_done)
                self.state = MessageState.STOPPED
                self._streaming_stop_listeners.notify(self)
            logger.info("Message stream cancelled", extra={"extra": {"message_id": self.id}})
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(
                "Message stream failed",
                extra={"extra": {"message_id": self.id, "error": str(exc)}},
            )

    def _on_close_done(self, task: asyncio.Future) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(
                "Message stream close failed",
                extra={"extra": {"message_id": self.id, "error": str(exc)}},
            )

    async def wait_until_stopped(self) -> None:
        """等待后台流式读取结束；读取失败时重新抛出原始异常。"""

        if self._stream_task is not None:
            await self._stream_task

    def cancel_streaming(self) -> bool:
        if self._stream_task is None or self._stream_task.done():
            return False
        return self._stream_task.cancel()

    # ---- 订阅 ----

    def on_update(self, listener: MessageListener) -> Callable[[], None]:
        """content 每次变化（赋值或流式增量）时回调。"""

        return self._update_listeners.add(listener)

    def off_update(self, listener: MessageListener) -> None:
        self._update_listeners.remove(listener)

    def on_streaming_update(self, listener: MessageListener) -> Callable[[], None]:
        return self._streaming_update_listeners.add(listener)

    def off_streaming_update(self, listener: MessageListener) -> None:
        self._streaming_update_listeners.remove(listener)

    def on_streaming_stop(self, listener: MessageListener) -> Callable[[], None]:
        return self._streaming_stop_listeners.add(listener)

    def off_streaming_stop(self, listener: MessageListener) -> None:
        self._streaming_stop_listeners.remove(listener)
