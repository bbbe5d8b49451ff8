"""Accrual records and the result structures the engine returns."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field, computed_field, field_validator

from rebateflow.core.clock import ensure_utc, utcnow

MONTHLY_MAX_DAYS = 35
QUARTERLY_MAX_DAYS = 95


class PeriodType(StrEnum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"


class AccrualStatus(StrEnum):
    CALCULATED = "calculated"
    FINALIZED = "finalized"
    PAID = "paid"


def period_type_for(start: datetime, end: datetime) -> PeriodType:
    """Describe a period by its length in whole days (rounded)."""
    days = round((end - start).total_seconds() / 86400)
    if days <= MONTHLY_MAX_DAYS:
        return PeriodType.MONTHLY
    if days <= QUARTERLY_MAX_DAYS:
        return PeriodType.QUARTERLY
    return PeriodType.ANNUAL


class Accrual(BaseModel):
    """Rebate owed to one dealer for one program period.

    Keyed by (program_id, dealer_id, period_start). ``accrued_amount`` is
    volume x rate; ``final_amount`` is the same after the per-dealer cap.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    program_id: str
    dealer_id: str
    period_start: datetime
    period_end: datetime
    qualifying_volume: Decimal = Decimal("0")
    rebate_rate: Decimal = Decimal("0")
    accrued_amount: Decimal = Decimal("0")
    final_amount: Decimal = Decimal("0")
    tier_achieved: str = ""
    tier_progress: Decimal = Decimal("0")
    status: AccrualStatus = AccrualStatus.CALCULATED
    calculated_at: datetime = Field(default_factory=utcnow)
    finalized_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None

    @field_validator("period_start", "period_end", "calculated_at", "finalized_at", "paid_at")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return None if value is None else ensure_utc(value)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def period_type(self) -> PeriodType:
        return period_type_for(self.period_start, self.period_end)

    @property
    def key(self) -> tuple[str, str, datetime]:
        return (self.program_id, self.dealer_id, self.period_start)

    @property
    def is_locked(self) -> bool:
        return self.status != AccrualStatus.CALCULATED


class DealerError(BaseModel):
    dealer_id: str
    error: str


class BatchAccrualRunResult(BaseModel):
    """Summary of one batch accrual run."""

    run_id: str
    program_id: str
    period_type: PeriodType
    period_start: datetime
    period_end: datetime
    processed_count: int = 0
    total_accrued: Decimal = Decimal("0")  # sum of uncapped accrued amounts
    total_final: Decimal = Decimal("0")  # sum after per-dealer caps
    errors: list[DealerError] = Field(default_factory=list)
    cancelled: bool = False
    started_at: datetime
    completed_at: datetime


class FinalizeResult(BaseModel):
    program_id: str
    period_start: datetime
    period_end: datetime
    count: int = 0
    total_amount: Decimal = Decimal("0")


class TierInfo(BaseModel):
    name: str
    min_volume: Decimal
    rate: Decimal


class ProjectionResult(BaseModel):
    """Run-rate estimate for the current, incomplete period. Never persisted."""

    program_id: str
    dealer_id: str
    period_type: PeriodType
    period_start: datetime
    period_end: datetime
    current_volume: Decimal
    projected_volume: Decimal
    current_rate: Decimal
    projected_rate: Decimal
    current_accrual: Decimal
    projected_accrual: Decimal
    current_tier: Optional[str] = None
    projected_tier: Optional[str] = None
    next_tier: Optional[TierInfo] = None
    volume_to_next_tier: Optional[Decimal] = None  # <= 0 means already qualifies
    days_elapsed: int
    days_remaining: int
    average_daily_volume: Decimal


class DealerAccrualSummary(BaseModel):
    dealer_id: str
    program_id: Optional[str] = None
    total_accrued: Decimal = Decimal("0")
    total_paid: Decimal = Decimal("0")
    pending: Decimal = Decimal("0")
    accruals: list[Accrual] = Field(default_factory=list)


class PeriodSummary(BaseModel):
    period_start: datetime
    period_end: datetime
    period_type: PeriodType
    dealer_count: int = 0
    total_amount: Decimal = Decimal("0")
    statuses: dict[str, int] = Field(default_factory=dict)


class ProgramAccrualSummary(BaseModel):
    program_id: str
    counts: dict[str, int] = Field(default_factory=dict)
    amounts: dict[str, Decimal] = Field(default_factory=dict)
    periods: list[PeriodSummary] = Field(default_factory=list)
