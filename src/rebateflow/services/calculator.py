"""Single dealer accrual calculation with idempotent upsert."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from rebateflow.core.clock import ensure_utc
from rebateflow.core.exceptions import InvalidStateError
from rebateflow.models.accrual import Accrual
from rebateflow.models.enrollment import Enrollment
from rebateflow.models.program import Program
from rebateflow.services.base import BaseService
from rebateflow.services.rates import resolve_rate
from rebateflow.services.volume import QualifyingVolumeCalculator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccrualWrite:
    """The stored accrual and the row it replaced, if any."""

    accrual: Accrual
    previous: Accrual | None


class AccrualCalculator(BaseService):
    """Volume x rate, capped per dealer, upserted by (program, dealer, period_start).

    Enrollment status never gates the calculation; callers decide which dealers
    to run. When the dealer is enrolled, the enrollment's cached tier and
    running total are refreshed from the stored accrual rows after each write.
    """

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._volume = QualifyingVolumeCalculator(self._orders, self._settings.accrual)

    def calculate(
        self,
        program_id: str,
        dealer_id: str,
        period_start: datetime,
        period_end: datetime,
        recalculate: bool = False,
    ) -> Accrual:
        program = self._load_program(program_id)
        write = self.calculate_for_program(program, dealer_id, period_start, period_end, recalculate)
        self.sync_enrollment(write.accrual)
        return write.accrual

    def calculate_for_program(
        self,
        program: Program,
        dealer_id: str,
        period_start: datetime,
        period_end: datetime,
        recalculate: bool = False,
    ) -> AccrualWrite:
        """Compute against an already-loaded program (a batch run's rules snapshot)."""
        period_start, period_end = ensure_utc(period_start), ensure_utc(period_end)
        if period_end < period_start:
            raise InvalidStateError("period_end precedes period_start")

        rules = program.rules
        volume = self._volume.calculate(dealer_id, period_start, period_end, rules)
        resolution = resolve_rate(volume, rules)

        accrued = self._money(volume * resolution.rate)
        final = accrued
        if rules.max_payout_per_dealer is not None:
            final = min(accrued, self._money(rules.max_payout_per_dealer))

        candidate = Accrual(
            program_id=program.id,
            dealer_id=dealer_id,
            period_start=period_start,
            period_end=period_end,
            qualifying_volume=volume,
            rebate_rate=resolution.rate,
            accrued_amount=accrued,
            final_amount=final,
            tier_achieved=resolution.tier_name,
            tier_progress=resolution.progress,
            calculated_at=self._clock(),
        )
        stored, previous = self._accruals.upsert_accrual(candidate, allow_locked=recalculate)

        if previous is not None and previous.is_locked:
            logger.warning(
                "Recalculated %s accrual for dealer %s in program %s (period %s)",
                previous.status, dealer_id, program.id, period_start.date(),
            )
        return AccrualWrite(accrual=stored, previous=previous)

    def sync_enrollment(self, accrual: Accrual) -> Enrollment | None:
        """Set the enrollment's tier and running total from the dealer's accrual rows.

        The total is the sum of ``final_amount`` over every stored period, so a
        missed or repeated sync is corrected by the next one. Returns ``None``
        when the dealer is not enrolled in the program.
        """
        if self._enrollments.get_enrollment(accrual.program_id, accrual.dealer_id) is None:
            return None
        rows = self._accruals.list_accruals(program_id=accrual.program_id, dealer_id=accrual.dealer_id)
        total = sum((row.final_amount for row in rows), Decimal("0"))
        return self._enrollments.apply_accrual(
            accrual.program_id, accrual.dealer_id,
            tier_achieved=accrual.tier_achieved,
            tier_progress=accrual.tier_progress,
            accrued_total=self._money(total),
        )
