"""OpenAI 兼容 Provider 适配器。

本模块负责：

1. 接收会话引擎投影出的 ChatMessage 列表与透传的补全参数。
2. 将其转换为 OpenAI chat/completions 的 HTTP 请求格式。
3. 调用 HTTP 接口并把网络/API 异常映射为 TransportError 子类。
4. 非流式：把响应 JSON 解析为统一的 ChatResult。
   流式：先完成握手并校验状态码，再返回惰性产出 content 增量的 StreamHandle。

任何兼容 OpenAI 协议的服务（自建网关、Azure 代理等）都可以通过 base_url 接入。
"""

import json
from typing import Any, AsyncIterator, Dict, List, Optional, Union

import httpx

from chat_core.config.settings import settings
from chat_core.domain.exceptions import ApiError, NetworkError, RateLimitError, ValidationError
from chat_core.domain.models import ChatChoice, ChatMessage, ChatResult, ChatUsage
from chat_core.providers.base import RequestOptions


def raise_for_status(resp: httpx.Response, provider: str) -> None:
    if resp.status_code == 429:
        # 限流错误交给上层做重试/退避
        raise RateLimitError(code="RATE_LIMIT", message=f"{provider} rate limit", http_status=429)
    if resp.status_code >= 400:
        raise ApiError(code="API_ERROR", message=resp.text, http_status=resp.status_code)


class SSEStreamHandle:
    """基于 text/event-stream 响应的增量句柄。

    只产出非空的 delta.content；遇到 [DONE] 或响应结束即终止。
    无论正常结束还是提前关闭，都会释放底层响应与连接。
    """

    def __init__(self, client: httpx.AsyncClient, response: httpx.Response):
        self._client = client
        self._response = response
        self._closed = False

    def __aiter__(self) -> AsyncIterator[str]:
        return self._iter_deltas()

    async def _iter_deltas(self) -> AsyncIterator[str]:
        try:
            async for line in self._response.aiter_lines():
                if not line:
                    continue
                data_str = line[5:].strip() if line.startswith("data:") else line.strip()
                if not data_str:
                    continue
                if data_str == "[DONE]":
                    break
                try:
                    chunk = json.loads(data_str)
                except json.JSONDecodeError:
                    continue
                for choice in chunk.get("choices") or []:
                    delta = (choice.get("delta") or {}).get("content")
                    if delta:
                        yield delta
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._response.aclose()
        await self._client.aclose()


class OpenAIChatClient:
    """OpenAI chat/completions 客户端实现。

    - name: Provider 名称（供日志/调试使用）。
    - create_completion: 对外统一调用入口。
    """

    name = "openai"

    def __init__(self, cfg=settings):
        # Settings 里包含 base_url、api_key、超时等配置
        self._settings = cfg

    async def create_completion(
        self,
        messages: List[ChatMessage],
        options: Dict[str, Any],
        request_options: Optional[RequestOptions] = None,
        *,
        api_key: Optional[str] = None,
    ) -> Union[ChatResult, SSEStreamHandle]:
        """执行一次补全调用，options["stream"] 决定返回 ChatResult 还是 SSEStreamHandle。"""

        key = api_key or getattr(self._settings, "api_key", None)
        if not key:
            # 配置缺失走 ValidationError，方便上层统一处理
            raise ValidationError(code="MISSING_API_KEY", message="CHAT_CORE_API_KEY not set")
        payload = self._build_payload(messages, options)
        url, headers, timeout = self._request_params(key, request_options or {})

        if payload["stream"]:
            return await self._open_stream(url, payload, headers, timeout)

        try:
            async with httpx.AsyncClient(timeout=timeout, trust_env=False) as client:
                resp = await client.post(url, json=payload, headers=headers)
        except httpx.RequestError as e:
            # 网络错误：DNS 失败、连接超时等
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        raise_for_status(resp, self.name)
        return self._parse_response(resp.json(), payload["model"])

    async def _open_stream(
        self,
        url: str,
        payload: Dict[str, Any],
        headers: Dict[str, str],
        timeout: float,
    ) -> SSEStreamHandle:
        client = httpx.AsyncClient(timeout=timeout, trust_env=False)
        try:
            request = client.build_request("POST", url, json=payload, headers=headers)
            resp = await client.send(request, stream=True)
        except httpx.RequestError as e:
            await client.aclose()
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        if resp.status_code >= 400:
            # 显式读取错误体，避免静默无输出
            await resp.aread()
            await resp.aclose()
            await client.aclose()
            raise_for_status(resp, self.name)
        return SSEStreamHandle(client, resp)

    def _request_params(self, api_key: str, request_options: RequestOptions):
        base = request_options.get("base_url") or getattr(self._settings, "base_url", None)
        timeout = request_options.get("timeout") or getattr(self._settings, "http_timeout", 60.0)
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            **(request_options.get("headers") or {}),
        }
        return f"{base.rstrip('/')}/chat/completions", headers, timeout

    def _build_payload(self, messages: List[ChatMessage], options: Dict[str, Any]) -> Dict[str, Any]:
        """将消息与透传参数转成请求 JSON。"""

        payload = {k: v for k, v in options.items() if v is not None}
        payload["messages"] = [m.to_payload() for m in messages]
        payload["stream"] = bool(options.get("stream"))
        payload.setdefault("model", getattr(self._settings, "model", "gpt-3.5-turbo"))
        return payload

    def _parse_response(self, data: Dict[str, Any], model: str) -> ChatResult:
        """将原始响应 JSON 解析为统一的 ChatResult。"""

        choices: List[ChatChoice] = []
        for i, ch in enumerate(data.get("choices", [])):
            msg = ch.get("message") or {}
            choices.append(
                ChatChoice(
                    index=ch.get("index", i),
                    message=ChatMessage(
                        role=msg.get("role") or "assistant",
                        content=msg.get("content") or "",
                    ),
                    finish_reason=ch.get("finish_reason"),
                )
            )
        usage_raw = data.get("usage") or {}
        usage = None
        if usage_raw:
            usage = ChatUsage(
                prompt_tokens=usage_raw.get("prompt_tokens", 0),
                completion_tokens=usage_raw.get("completion_tokens", 0),
                total_tokens=usage_raw.get("total_tokens", 0),
            )
        return ChatResult(model=data.get("model") or model, choices=choices, usage=usage, raw=data)
