"""Token 计数与费用估算。

分词交给 tiktoken：已知模型用其对应编码，未知模型退回 cl100k_base。
"""

from functools import lru_cache

import tiktoken

from chat_core.providers.registry import PriceKind, get_model_config


FALLBACK_ENCODING = "cl100k_base"


@lru_cache(maxsize=None)
def _encoding_for(model: str) -> "tiktoken.Encoding":
    try:
        return tiktoken.encoding_for_model(model)
    except KeyError:
        return tiktoken.get_encoding(FALLBACK_ENCODING)


def get_message_size(content: str, model: str) -> int:
    """返回 content 在 model 下的 token 数。"""

    if not content:
        return 0
    return len(_encoding_for(model).encode(content))


def get_message_cost(size: int, model: str, kind: PriceKind) -> float:
    """按模型单价估算 size 个 token 的费用（美元）。"""

    cfg = get_model_config(model)
    if cfg is None or size <= 0:
        return 0.0
    return size / 1000 * cfg.price_per_1k(kind)
