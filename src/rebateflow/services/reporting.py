"""Accrual summaries for dealer dashboards and program administration."""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from decimal import Decimal

from rebateflow.models.accrual import (
    AccrualStatus,
    DealerAccrualSummary,
    PeriodSummary,
    ProgramAccrualSummary,
)
from rebateflow.services.base import BaseService


class AccrualReporter(BaseService):
    def dealer_summary(self, dealer_id: str, program_id: str | None = None) -> DealerAccrualSummary:
        accruals = self._accruals.list_accruals(program_id=program_id, dealer_id=dealer_id)
        return DealerAccrualSummary(
            dealer_id=dealer_id,
            program_id=program_id,
            total_accrued=sum((a.final_amount for a in accruals), Decimal("0")),
            total_paid=sum((a.final_amount for a in accruals if a.status == AccrualStatus.PAID), Decimal("0")),
            pending=sum(
                (a.final_amount for a in accruals if a.status == AccrualStatus.CALCULATED), Decimal("0"),
            ),
            accruals=accruals,
        )

    def program_summary(self, program_id: str) -> ProgramAccrualSummary:
        program = self._load_program(program_id)
        accruals = self._accruals.list_accruals(program_id=program.id)

        counts = {str(s): 0 for s in AccrualStatus}
        amounts = {str(s): Decimal("0") for s in AccrualStatus}
        periods: dict[tuple[datetime, datetime], PeriodSummary] = {}
        statuses: dict[tuple[datetime, datetime], dict[str, int]] = defaultdict(lambda: defaultdict(int))

        for a in accruals:
            counts[str(a.status)] += 1
            amounts[str(a.status)] += a.final_amount
            key = (a.period_start, a.period_end)
            summary = periods.setdefault(key, PeriodSummary(
                period_start=a.period_start, period_end=a.period_end, period_type=a.period_type,
            ))
            summary.dealer_count += 1
            summary.total_amount += a.final_amount
            statuses[key][str(a.status)] += 1

        for key, summary in periods.items():
            summary.statuses = dict(statuses[key])

        return ProgramAccrualSummary(
            program_id=program.id,
            counts=counts,
            amounts=amounts,
            periods=sorted(periods.values(), key=lambda p: p.period_start, reverse=True),
        )
