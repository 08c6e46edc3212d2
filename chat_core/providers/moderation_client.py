"""OpenAI 兼容的内容审核客户端。

调用 {base_url}/moderations，把 results[0].categories 中为 true 的类别
作为标记列表返回；未触发任何类别时返回空列表。
"""

from typing import List, Optional

import httpx

from chat_core.config.settings import settings
from chat_core.domain.exceptions import NetworkError, ValidationError
from chat_core.providers.base import RequestOptions
from chat_core.providers.openai_client import raise_for_status


class OpenAIModerationClient:
    name = "openai"

    def __init__(self, cfg=settings):
        self._settings = cfg

    async def moderate(
        self,
        content: str,
        api_key: Optional[str],
        request_options: Optional[RequestOptions] = None,
    ) -> List[str]:
        key = api_key or getattr(self._settings, "api_key", None)
        if not key:
            raise ValidationError(code="MISSING_API_KEY", message="CHAT_CORE_API_KEY not set")
        opts = request_options or {}
        base = opts.get("base_url") or self._settings.base_url
        timeout = opts.get("timeout") or self._settings.http_timeout
        headers = {
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
            **(opts.get("headers") or {}),
        }
        try:
            async with httpx.AsyncClient(timeout=timeout, trust_env=False) as client:
                resp = await client.post(
                    f"{base.rstrip('/')}/moderations",
                    json={"input": content},
                    headers=headers,
                )
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        raise_for_status(resp, self.name)
        results = resp.json().get("results") or []
        if not results:
            return []
        categories = results[0].get("categories") or {}
        return [name for name, hit in categories.items() if hit]
