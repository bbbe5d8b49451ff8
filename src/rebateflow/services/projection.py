"""Run-rate projection of end-of-period volume and rebate."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from rebateflow.core.clock import ensure_utc
from rebateflow.models.accrual import PeriodType, ProjectionResult, TierInfo
from rebateflow.services.base import BaseService
from rebateflow.services.periods import day_span, period_bounds
from rebateflow.services.rates import next_tier, resolve_rate
from rebateflow.services.volume import QualifyingVolumeCalculator


class ProjectionEngine(BaseService):
    """Read-only estimate for the current period; never writes accruals.

    Counts in-flight orders (``projection_statuses``) so the estimate tracks the
    pipeline, and extrapolates linearly from the average daily volume so far.
    """

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._volume = QualifyingVolumeCalculator(self._orders, self._settings.accrual)

    def project(
        self,
        program_id: str,
        dealer_id: str,
        period_type: str | None = None,
        as_of: datetime | None = None,
    ) -> ProjectionResult:
        program = self._load_program(program_id)
        rules = program.rules
        now = ensure_utc(as_of) if as_of is not None else self._clock()
        period_type = PeriodType(period_type or self._settings.accrual.default_period_type)
        period_start, period_end = period_bounds(period_type, now)

        current_volume = self._volume.calculate(
            dealer_id, period_start, min(now, period_end), rules,
            statuses=self._settings.accrual.projection_statuses,
        )

        days_elapsed = max(1, day_span(period_start, now))
        total_days = day_span(period_start, period_end)
        days_remaining = max(0, total_days - days_elapsed)

        average_daily = current_volume / days_elapsed
        projected_volume = self._money(current_volume + average_daily * days_remaining)

        current = resolve_rate(current_volume, rules)
        projected = resolve_rate(projected_volume, rules)

        upcoming = next_tier(rules, current.tier)
        next_info = None
        volume_to_next = None
        if upcoming is not None:
            next_info = TierInfo(name=upcoming.name, min_volume=upcoming.min_volume, rate=upcoming.rate)
            volume_to_next = upcoming.min_volume - current_volume

        return ProjectionResult(
            program_id=program.id,
            dealer_id=dealer_id,
            period_type=period_type,
            period_start=period_start,
            period_end=period_end,
            current_volume=current_volume,
            projected_volume=projected_volume,
            current_rate=current.rate,
            projected_rate=projected.rate,
            current_accrual=self._money(current_volume * current.rate),
            projected_accrual=self._money(projected_volume * projected.rate),
            current_tier=current.tier.name if current.tier else None,
            projected_tier=projected.tier.name if projected.tier else None,
            next_tier=next_info,
            volume_to_next_tier=volume_to_next,
            days_elapsed=days_elapsed,
            days_remaining=days_remaining,
            average_daily_volume=self._money(average_daily),
        )
