"""Usage ledger: per-message cost from token counts and a static price table."""

from __future__ import annotations

from dataclasses import dataclass

from starbase.config import TierConfig
from starbase.core.types import ModelTier
from starbase.log import get_logger

logger = get_logger(__name__)

COST_DECIMALS = 4


@dataclass(frozen=True, slots=True)
class ModelPrice:
    input_per_1k: float  # dollars
    output_per_1k: float  # dollars


def calculate_cost_cents(price: ModelPrice, input_tokens: int, output_tokens: int) -> float:
    """Cost in cents, rounded to four decimal places."""
    dollars = (input_tokens / 1000) * price.input_per_1k + (output_tokens / 1000) * price.output_per_1k
    return round(dollars * 100, COST_DECIMALS)


class UsageLedger:
    """Maps tiers to model ids and prices token usage per model."""

    def __init__(self, tiers: dict[ModelTier, TierConfig]):
        self._models = {tier: cfg.model for tier, cfg in tiers.items()}
        self._prices = {
            cfg.model: ModelPrice(cfg.input_per_1k, cfg.output_per_1k) for cfg in tiers.values()
        }

    def model_for(self, tier: ModelTier) -> str:
        return self._models[tier]

    def price_for(self, model: str) -> ModelPrice:
        """Unknown models are tracked at zero cost."""
        price = self._prices.get(model)
        if price is None:
            logger.warning("model_price_unknown", model=model)
            return ModelPrice(0.0, 0.0)
        return price

    def record(self, tier: ModelTier, model: str, input_tokens: int, output_tokens: int) -> float:
        cost = calculate_cost_cents(self.price_for(model), input_tokens, output_tokens)
        logger.debug(
            "usage_recorded",
            tier=str(tier),
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_cents=cost,
        )
        return cost
