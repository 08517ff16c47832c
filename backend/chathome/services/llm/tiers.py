"""Model tiers: named buckets trading latency for reasoning depth.

Each tier has fixed generation parameters. Only the fast tier is guaranteed to
accept image input, so any exchange carrying an image runs on it.
"""

from dataclasses import dataclass
from enum import Enum

from chathome.core.config import settings


class Tier(str, Enum):
    FAST = "fast"
    THINKING = "thinking"

    @classmethod
    def parse(cls, value: str) -> "Tier":
        """Accept tier names and the coarse reasoning-effort aliases."""
        normalized = (value or "").strip().lower()
        normalized = _ALIASES.get(normalized, normalized)
        return cls(normalized)


_ALIASES = {"minimal": "fast", "medium": "thinking"}

VISION_TIER = Tier.FAST


@dataclass(frozen=True)
class TierConfig:
    tier: Tier
    model: str
    temperature: float
    vision: bool
    thinking_budget: int | None = None


def tier_config(tier: Tier) -> TierConfig:
    if tier is Tier.THINKING:
        return TierConfig(
            tier=tier,
            model=settings.thinking_model,
            temperature=settings.thinking_temperature,
            vision=False,
            thinking_budget=settings.thinking_budget,
        )
    return TierConfig(
        tier=Tier.FAST,
        model=settings.fast_model,
        temperature=settings.fast_temperature,
        vision=True,
    )


def effective_tier(requested: Tier, needs_vision: bool) -> Tier:
    """Force the vision tier whenever the exchange carries an image."""
    if needs_vision:
        return VISION_TIER
    return requested
