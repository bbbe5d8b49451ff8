"""Volume -> rate resolution over flat or tiered rules."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from rebateflow.models.program import FlatRateRules, Tier, TieredRules
from rebateflow.services.base import quantize

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class TierResolution:
    rate: Decimal
    tier: Tier | None
    progress: Decimal  # 0-100 toward the next higher tier

    @property
    def tier_name(self) -> str:
        return self.tier.name if self.tier else ""


def _clamp_pct(value: Decimal) -> Decimal:
    return quantize(min(HUNDRED, max(Decimal("0"), value)))


def achieved_tier(volume: Decimal, rules: TieredRules) -> Tier | None:
    """Highest tier whose inclusive minimum the volume reaches."""
    for tier in reversed(rules.tiers):
        if volume >= tier.min_volume:
            return tier
    return None


def next_tier(rules: FlatRateRules | TieredRules, current: Tier | None) -> Tier | None:
    """The tier above ``current``; the lowest tier when none is achieved."""
    if not isinstance(rules, TieredRules):
        return None
    if current is None:
        return rules.tiers[0]
    idx = next(i for i, t in enumerate(rules.tiers) if t.name == current.name)
    return rules.tiers[idx + 1] if idx + 1 < len(rules.tiers) else None


def resolve_rate(volume: Decimal, rules: FlatRateRules | TieredRules) -> TierResolution:
    """Resolve the effective rate, achieved tier and progress for ``volume``.

    Below the lowest tier the fallback rate (or zero) applies and progress is
    measured from zero toward the lowest tier's minimum.
    """
    if isinstance(rules, FlatRateRules):
        return TierResolution(rate=rules.rate, tier=None, progress=Decimal("0"))

    tier = achieved_tier(volume, rules)
    upper = next_tier(rules, tier)

    if tier is None:
        rate = rules.fallback_rate if rules.fallback_rate is not None else Decimal("0")
        progress = volume / upper.min_volume * HUNDRED if upper.min_volume > 0 else Decimal("0")
        return TierResolution(rate=rate, tier=None, progress=_clamp_pct(progress))

    if upper is None:
        return TierResolution(rate=tier.rate, tier=tier, progress=_clamp_pct(HUNDRED))

    span = upper.min_volume - tier.min_volume
    return TierResolution(
        rate=tier.rate,
        tier=tier,
        progress=_clamp_pct((volume - tier.min_volume) / span * HUNDRED),
    )
