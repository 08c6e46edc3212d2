"""会话引擎核心模块。

Conversation 管理发往补全服务的消息历史，并保证以下不变量在每个公开操作后成立：

1. 至多一条 system 消息，且只能位于 index 0。
2. 相邻的非 system 消息角色不同。
3. messages 的顺序就是成功准入的时间顺序（扣除删除）。
4. 累计 size / cost 只增不减。
5. 消息 ID 不变，删除是消息离开历史的唯一途径。

所有准入路径最终都经过 `_admit`，由 rules.decide_admission 决定具体动作。

并发约定：同一实例不支持并发调用 prompt / reprompt / add_*，调用方需串行使用。
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union
from uuid import uuid4

from chat_core.domain.conversation_config import ConversationConfig
from chat_core.domain.exceptions import EmptyUserContent, MessageNotFound, ModerationViolation, NoPriorUserMessage
from chat_core.domain.listeners import ListenerRegistry
from chat_core.domain.message import Message
from chat_core.domain.models import ChatMessage, MessageState
from chat_core.domain.rules import Admission, decide_admission
from chat_core.infrastructure.logging.logger import logger
from chat_core.providers import create_completion_client, create_moderation_client, dry
from chat_core.providers.base import ChatCompletionClient, ModerationClient, RequestOptions


MessageListener = Callable[[Message], None]
MessageRef = Union[str, Message]


class Conversation:
    """一段对话：消息历史、准入规则、补全请求与费用统计。

    Example:
        conversation = Conversation({"api_key": "sk-..."})
        answer = await conversation.prompt("Hello!")
        answer = await conversation.reprompt(answer)            # 重新生成
        answer = await conversation.reprompt(answer, "Goodbye!") # 编辑上一条 user 消息
    """

    def __init__(
        self,
        config: Union[ConversationConfig, Mapping[str, Any], None] = None,
        request_options: Optional[RequestOptions] = None,
        *,
        completion_client: Optional[ChatCompletionClient] = None,
        moderation_client: Optional[ModerationClient] = None,
    ):
        # 本地生成的 ID，与补全服务的会话 ID 无关
        self.id = f"c-{uuid4().hex}"
        if isinstance(config, ConversationConfig):
            self.config = config
        else:
            self.config = ConversationConfig.from_replace(config or {})
        self.request_options: RequestOptions = dict(request_options or {})
        self.messages: List[Message] = []
        self._completion_client = completion_client
        self._moderation_client = moderation_client
        self._add_listeners: ListenerRegistry[Message] = ListenerRegistry()
        self._remove_listeners: ListenerRegistry[Message] = ListenerRegistry()
        self._streaming: Dict[str, Message] = {}
        self._cumulative_size = 0
        self._cumulative_cost = 0.0
        self.clear_messages()

    # ---- 监听 ----

    def on_message_added(self, listener: MessageListener) -> Callable[[], None]:
        """订阅消息准入事件，返回取消订阅的函数。"""

        return self._add_listeners.add(listener)

    def off_message_added(self, listener: MessageListener) -> None:
        self._add_listeners.remove(listener)

    def on_message_removed(self, listener: MessageListener) -> Callable[[], None]:
        """订阅消息删除事件，返回取消订阅的函数。"""

        return self._remove_listeners.add(listener)

    def off_message_removed(self, listener: MessageListener) -> None:
        self._remove_listeners.remove(listener)

    # ---- 准入 ----

    async def _add_message(self, message: Message) -> Message:
        if message.state is MessageState.STOPPED:
            message.content = message.content.strip()
        if not message.content and message.role == "user":
            raise EmptyUserContent()
        await self._moderate(message)
        self._admit(message)
        return message

    async def _moderate(self, message: Message) -> None:
        if not self.config.is_moderation_enabled or self.config.dry or not message.content:
            return
        flags = await message.moderate(
            self.config.api_key,
            self.request_options,
            self._get_moderation_client(),
        )
        if not flags:
            return
        self._log(logging.WARNING, "Message flagged by moderation", message_id=message.id, flags=flags)
        if self.config.is_moderation_strict:
            raise ModerationViolation(flags)

    def _admit(self, message: Message) -> None:
        last_role = self.messages[-1].role if self.messages else None
        action = decide_admission(message.role, last_role, self._has_context(), bool(message.content))
        displaced: Optional[Message] = None

        if action is Admission.APPEND:
            self.messages.append(message)
        elif action is Admission.INSERT_SYSTEM:
            self.messages.insert(0, message)
        elif action is Admission.REPLACE_SYSTEM:
            displaced = self.messages[0]
            self.messages[0] = message
        elif action is Admission.DROP_SYSTEM:
            displaced = self.messages.pop(0)

        if message.role == "system":
            self._sync_context(message.content)
        self._log(logging.DEBUG, "Admitted message", message_id=message.id, role=message.role, action=action.value)

        if displaced is not None:
            self._remove_listeners.notify(displaced)
        if action in (Admission.APPEND, Admission.INSERT_SYSTEM, Admission.REPLACE_SYSTEM):
            self._add_listeners.notify(message)

    def _apply_context(self, context: str) -> None:
        """不经审核直接应用 context（构造、清空历史、替换配置时使用）。"""

        self._admit(Message("system", context, self.config.model))

    def _sync_context(self, context: str) -> None:
        if self.config.context != context:
            self.config = ConversationConfig.from_merge(self.config, {"context": context})

    def _has_context(self) -> bool:
        return bool(self.messages) and self.messages[0].role == "system"

    async def add_user_message(self, content: str) -> Message:
        """添加一条 user 消息。

        Raises:
            EmptyUserContent: 内容去除空白后为空。
            ModerationViolation: strict 审核策略下被标记。
            AdjacentRoleViolation: 最后一条消息也是 user。
        """

        return await self._add_message(Message("user", content, self.config.model))

    async def add_assistant_message(self, content: str) -> Message:
        """添加一条 assistant 消息。"""

        return await self._add_message(Message("assistant", content, self.config.model))

    async def set_context(self, context: str) -> Message:
        """设置（或在 context 为空时移除）位于历史开头的 system 消息。"""

        return await self._add_message(Message("system", context, self.config.model))

    # ---- 查询 / 删除 ----

    def get_messages(self, include_context: bool = False) -> List[Message]:
        """返回消息列表的浅拷贝，默认不包含 system 消息。"""

        if include_context or not self._has_context():
            return list(self.messages)
        return self.messages[1:]

    def _index_of(self, message: MessageRef) -> int:
        message_id = message if isinstance(message, str) else message.id
        for index, m in enumerate(self.messages):
            if m.id == message_id:
                return index
        raise MessageNotFound(message_id)

    def remove_message(self, message: MessageRef) -> Message:
        """从历史中删除一条消息（ID 或 Message 均可）。

        Raises:
            MessageNotFound: 历史中不存在该消息。
        """

        removed = self.messages.pop(self._index_of(message))
        if removed.role == "system":
            self._sync_context("")
        self._log(logging.DEBUG, "Removed message", message_id=removed.id, role=removed.role)
        self._remove_listeners.notify(removed)
        return removed

    def _discard(self, message: Message) -> None:
        if any(m.id == message.id for m in self.messages):
            self.remove_message(message)

    def clear_messages(self) -> None:
        """清空历史，只保留（重新插入）context 消息。"""

        removed, self.messages = self.messages, []
        for m in removed:
            self._remove_listeners.notify(m)
        self._apply_context(self.config.context)

    # ---- 统计 ----

    def get_size(self) -> int:
        """当前历史的 token 总数，即下一次请求至少要发送的 token 数（估算）。"""

        return sum(m.size for m in self.messages)

    def get_cost(self) -> float:
        """当前历史的估算费用。"""

        return sum(m.cost for m in self.messages)

    def get_cumulative_size(self) -> int:
        """会话创建以来所有请求累计的 token 数。"""

        return self._cumulative_size

    def get_cumulative_cost(self) -> float:
        """会话创建以来所有请求累计的估算费用。"""

        return self._cumulative_cost

    def _record_usage(self, prompt_size: int, prompt_cost: float, message: Message) -> None:
        self._cumulative_size += prompt_size + message.size
        self._cumulative_cost += prompt_cost + message.cost
        self._log(
            logging.INFO,
            "Recorded usage",
            message_id=message.id,
            prompt_size=prompt_size,
            completion_size=message.size,
            cumulative_size=self._cumulative_size,
            cumulative_cost=round(self._cumulative_cost, 6),
        )

    # ---- 配置 ----

    def get_config(self) -> Dict[str, Any]:
        """当前配置的普通字典视图（透传参数 + 固定字段）。"""

        return self.config.as_params()

    def set_config(self, config: Mapping[str, Any], merge: bool = False) -> None:
        """替换或合并配置。

        config 中带有 context 时会随后应用到 system 消息；
        替换模式下未提供 context 则沿用当前历史中的 context。
        """

        params = dict(config)
        if merge:
            self.config = ConversationConfig.from_merge(self.config, params)
        else:
            current_context = self.messages[0].content if self._has_context() else ""
            self.config = ConversationConfig.from_replace({"context": current_context, **params})
        if "context" in params:
            self._apply_context(self.config.context)

    # ---- 补全 ----

    def _get_completion_client(self) -> ChatCompletionClient:
        if self._completion_client is None:
            self._completion_client = create_completion_client()
        return self._completion_client

    def _get_moderation_client(self) -> ModerationClient:
        if self._moderation_client is None:
            self._moderation_client = create_moderation_client()
        return self._moderation_client

    def _project(self) -> List[ChatMessage]:
        return [m.to_chat_message() for m in self.messages]

    def _request_args(
        self,
        options: Dict[str, Any],
        request_options: Optional[RequestOptions],
        stream: bool,
    ) -> Tuple[Dict[str, Any], RequestOptions]:
        return (
            {**self.config.completion_options, **options, "stream": stream},
            {**self.request_options, **(request_options or {})},
        )

    async def get_chat_completion_response(
        self,
        options: Optional[Dict[str, Any]] = None,
        request_options: Optional[RequestOptions] = None,
    ) -> Message:
        """用当前历史请求一次补全，返回新的 assistant 消息（尚未加入历史）。

        options 中的 stream 覆盖配置默认值。流式模式下立即返回空消息，
        内容随增量到达逐步写入，可通过 on_streaming_update / on_streaming_stop 订阅。
        """

        options = dict(options or {})
        stream = options.pop("stream", None)
        if stream is None:
            stream = self.config.stream
        if stream:
            return await self._handle_streamed_response(options, request_options)
        return await self._handle_non_streamed_response(options, request_options)

    async def _handle_streamed_response(
        self,
        options: Dict[str, Any],
        request_options: Optional[RequestOptions],
    ) -> Message:
        message = Message.for_stream("assistant", self.config.model)
        messages = self._project()
        prompt_size, prompt_cost = self.get_size(), self.get_cost()

        def on_stop(m: Message) -> None:
            unsubscribe()
            self._streaming.pop(m.id, None)
            self._record_usage(prompt_size, prompt_cost, m)

        unsubscribe = message.on_streaming_stop(on_stop)

        if self.config.dry:
            stream = dry.create_dry_chat_completion(messages[-1].content if messages else "")
        else:
            completion_options, merged_request_options = self._request_args(options, request_options, True)
            self._log(logging.INFO, "Calling provider", stream=True, message_count=len(messages))
            try:
                stream = await self._get_completion_client().create_completion(
                    messages,
                    completion_options,
                    merged_request_options,
                    api_key=self.config.api_key,
                )
            except Exception:
                unsubscribe()
                raise

        self._streaming[message.id] = message
        message.consume_in_background(stream)
        return message

    async def _handle_non_streamed_response(
        self,
        options: Dict[str, Any],
        request_options: Optional[RequestOptions],
    ) -> Message:
        messages = self._project()
        prompt_size, prompt_cost = self.get_size(), self.get_cost()

        if self.config.dry:
            await asyncio.sleep(dry.DRY_RESPONSE_DELAY)
            content = messages[-1].content if messages else ""
        else:
            completion_options, merged_request_options = self._request_args(options, request_options, False)
            self._log(logging.INFO, "Calling provider", stream=False, message_count=len(messages))
            result = await self._get_completion_client().create_completion(
                messages,
                completion_options,
                merged_request_options,
                api_key=self.config.api_key,
            )
            content = result.content

        message = Message("assistant", content, self.config.model)
        self._record_usage(prompt_size, prompt_cost, message)
        return message

    async def _get_assistant_response(
        self,
        options: Optional[Dict[str, Any]],
        request_options: Optional[RequestOptions],
    ) -> Message:
        completion = await self.get_chat_completion_response(options, request_options)
        try:
            return await self._add_message(completion)
        except (Exception, asyncio.CancelledError):
            # 准入后监听器抛错时回复已在历史中，需一并撤回
            completion.cancel_streaming()
            self._discard(completion)
            raise

    async def prompt(
        self,
        prompt: str,
        options: Optional[Dict[str, Any]] = None,
        request_options: Optional[RequestOptions] = None,
    ) -> Message:
        """推荐的交互入口：添加 user 消息、请求补全并添加 assistant 回复。

        补全阶段失败时会删除刚添加的 user 消息，再原样抛出异常。
        """

        user_message = await self.add_user_message(prompt)
        try:
            return await self._get_assistant_response(options, request_options)
        except (Exception, asyncio.CancelledError) as e:
            self._discard(user_message)
            self._log(logging.WARNING, "Rolled back prompt", message_id=user_message.id, error=str(e))
            raise

    async def reprompt(
        self,
        from_message: MessageRef,
        new_prompt: Optional[str] = None,
        options: Optional[Dict[str, Any]] = None,
        request_options: Optional[RequestOptions] = None,
    ) -> Message:
        """从某条消息重新生成回复。

        from_message 为 user 消息时以它为分支点，为 assistant 消息时以它前一条
        user 消息为分支点。给出 new_prompt 时先改写分支点内容，然后删除分支点
        之后的所有消息并请求新的回复；失败时分支点本身也会被删除。

        Raises:
            MessageNotFound: from_message 不在历史中。
            NoPriorUserMessage: 找不到可用的 user 分支点。
            EmptyUserContent: new_prompt 去除空白后为空。
        """

        from_index = self._index_of(from_message)
        message_id = self.messages[from_index].id
        branch_index = from_index if self.messages[from_index].role == "user" else from_index - 1
        if branch_index < 0 or self.messages[branch_index].role != "user":
            raise NoPriorUserMessage(message_id)
        branch = self.messages[branch_index]

        if new_prompt is not None:
            candidate = Message("user", new_prompt, branch.model)
            if not candidate.content:
                raise EmptyUserContent()
            await self._moderate(candidate)
            branch.content = candidate.content
            branch.flags = candidate.flags

        for m in self.messages[branch_index + 1:]:
            self.remove_message(m)

        try:
            return await self._get_assistant_response(options, request_options)
        except (Exception, asyncio.CancelledError) as e:
            self._discard(branch)
            self._log(logging.WARNING, "Rolled back reprompt", message_id=branch.id, error=str(e))
            raise

    async def aclose(self) -> None:
        """取消所有仍在进行的流式读取，被取消的消息以 stopped 状态结束。"""

        pending = [m for m in self._streaming.values() if m.state is not MessageState.STOPPED]
        for m in pending:
            m.cancel_streaming()
        await asyncio.gather(*(m.wait_until_stopped() for m in pending), return_exceptions=True)

    def _log(self, level: int, message: str, **fields: Any) -> None:
        payload = {"conversation_id": self.id}
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
