"""Finalize accruals for payout and record the payout hand-off."""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from rebateflow.core.clock import ensure_utc
from rebateflow.models.accrual import Accrual, FinalizeResult
from rebateflow.services.base import BaseService

logger = logging.getLogger(__name__)


class AccrualFinalizer(BaseService):
    """Locks ``calculated`` accruals inside a window and marks finalized ones paid."""

    def finalize(self, program_id: str, period_start: datetime, period_end: datetime) -> FinalizeResult:
        """Move every calculated accrual with start >= period_start and end <= period_end to finalized.

        Returns the count and summed final amount of the accruals finalized by this call.
        """
        program = self._load_program(program_id)
        period_start, period_end = ensure_utc(period_start), ensure_utc(period_end)

        finalized = self._accruals.finalize_window(program.id, period_start, period_end)
        total = sum((a.final_amount for a in finalized), Decimal("0"))
        logger.info(
            "Finalized %d accruals for program %s (%s to %s), total %s",
            len(finalized), program.id, period_start, period_end, total,
        )
        return FinalizeResult(
            program_id=program.id,
            period_start=period_start,
            period_end=period_end,
            count=len(finalized),
            total_amount=total,
        )

    def mark_paid(self, program_id: str, dealer_id: str, period_start: datetime) -> Accrual:
        program = self._load_program(program_id)
        return self._accruals.mark_paid(program.id, dealer_id, ensure_utc(period_start))
