"""模型单价表。

ModelConfig 记录每个模型族的单价（美元 / 1K tokens）。

模型名按最长前缀匹配到模型族，例如 "gpt-4-0613" -> "gpt-4"，
"gpt-4-32k-0613" -> "gpt-4-32k"。未登记的模型按 0 计价。
"""

from dataclasses import dataclass
from typing import Dict, Literal, Optional


PriceKind = Literal["prompt", "completion"]

DEFAULT_MODEL = "gpt-3.5-turbo"


@dataclass
class ModelConfig:
    """单个模型族的单价。"""

    name: str
    prompt_price_per_1k: float
    completion_price_per_1k: float

    def price_per_1k(self, kind: PriceKind) -> float:
        return self.completion_price_per_1k if kind == "completion" else self.prompt_price_per_1k


MODEL_PRICES: Dict[str, ModelConfig] = {
    cfg.name: cfg
    for cfg in (
        ModelConfig("gpt-3.5-turbo", 0.0015, 0.002),
        ModelConfig("gpt-3.5-turbo-16k", 0.003, 0.004),
        ModelConfig("gpt-4", 0.03, 0.06),
        ModelConfig("gpt-4-32k", 0.06, 0.12),
        ModelConfig("gpt-4o", 0.005, 0.015),
        ModelConfig("gpt-4o-mini", 0.00015, 0.0006),
    )
}


def get_model_config(model: str) -> Optional[ModelConfig]:
    """按最长前缀匹配模型族，找不到时返回 None。"""

    name = (model or "").lower()
    best: Optional[ModelConfig] = None
    for family, cfg in MODEL_PRICES.items():
        if name == family or name.startswith(family + "-"):
            if best is None or len(family) > len(best.name):
                best = cfg
    return best
