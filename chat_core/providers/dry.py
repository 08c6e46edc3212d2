"""Dry run 模拟补全。

不访问外部服务，直接回显最后一条消息的内容：
流式模式逐词产出，非流式模式由 Conversation 等待 DRY_RESPONSE_DELAY 后一次性写入。
"""

import asyncio
import re
from typing import AsyncIterator


# 非流式回显前的固定等待（秒）
DRY_RESPONSE_DELAY = 1.0
# 流式回显时相邻增量之间的间隔（秒）
DRY_STREAM_DELAY = 0.05

_WORD = re.compile(r"\s*\S+")


async def create_dry_chat_completion(content: str) -> AsyncIterator[str]:
    """把 content 按词切分后逐个产出，前导空白随词一起输出。"""

    for match in _WORD.finditer(content or ""):
        await asyncio.sleep(DRY_STREAM_DELAY)
        yield match.group(0)
