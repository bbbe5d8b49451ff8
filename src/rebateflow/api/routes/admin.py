"""Admin endpoints for accrual runs, finalization, summaries and projections.

Callers are expected to be authorized upstream; no role checks happen here.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel

from rebateflow.models.accrual import (
    Accrual,
    BatchAccrualRunResult,
    DealerAccrualSummary,
    FinalizeResult,
    ProgramAccrualSummary,
    ProjectionResult,
)
from rebateflow.services import RebateEngine

router = APIRouter(tags=["admin"])

PeriodTypeParam = Literal["monthly", "quarterly", "annual"]


class RunAccrualRequest(BaseModel):
    period_type: Optional[PeriodTypeParam] = None
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    recalculate: bool = False


class PeriodWindow(BaseModel):
    period_start: datetime
    period_end: datetime


class CalculateRequest(PeriodWindow):
    recalculate: bool = False


def _engine(request: Request) -> RebateEngine:
    return request.app.state.engine


@router.post("/programs/{program_id}/accruals/run", response_model=BatchAccrualRunResult)
def run_accruals(program_id: str, body: RunAccrualRequest, request: Request) -> BatchAccrualRunResult:
    """Run batch accruals for every active dealer in the program."""
    return _engine(request).batch.run(
        program_id,
        period_type=body.period_type,
        period_start=body.period_start,
        period_end=body.period_end,
        recalculate=body.recalculate,
    )


@router.post("/programs/{program_id}/accruals/finalize", response_model=FinalizeResult)
def finalize_accruals(program_id: str, body: PeriodWindow, request: Request) -> FinalizeResult:
    return _engine(request).finalizer.finalize(program_id, body.period_start, body.period_end)


@router.get("/programs/{program_id}/accruals/summary", response_model=ProgramAccrualSummary)
def program_summary(program_id: str, request: Request) -> ProgramAccrualSummary:
    return _engine(request).reporting.program_summary(program_id)


@router.post("/programs/{program_id}/dealers/{dealer_id}/accruals", response_model=Accrual)
def calculate_accrual(program_id: str, dealer_id: str, body: CalculateRequest, request: Request) -> Accrual:
    """Recalculate one dealer's accrual on demand."""
    return _engine(request).calculator.calculate(
        program_id, dealer_id, body.period_start, body.period_end, recalculate=body.recalculate,
    )


@router.post("/programs/{program_id}/coop/accruals/run", response_model=BatchAccrualRunResult)
def run_coop_accruals(program_id: str, body: RunAccrualRequest, request: Request) -> BatchAccrualRunResult:
    """Accrue co-op funds for every active dealer in a co-op program."""
    return _engine(request).coop.run(
        program_id,
        period_type=body.period_type,
        period_start=body.period_start,
        period_end=body.period_end,
        recalculate=body.recalculate,
    )


@router.post("/programs/{program_id}/dealers/{dealer_id}/coop/accruals", response_model=Accrual)
def calculate_coop_accrual(
    program_id: str, dealer_id: str, body: CalculateRequest, request: Request,
) -> Accrual:
    return _engine(request).coop.calculate(
        program_id, dealer_id, body.period_start, body.period_end, recalculate=body.recalculate,
    )


@router.get("/programs/{program_id}/dealers/{dealer_id}/projection", response_model=ProjectionResult)
def projection(
    program_id: str, dealer_id: str, request: Request, period_type: PeriodTypeParam = "monthly",
) -> ProjectionResult:
    return _engine(request).projection.project(program_id, dealer_id, period_type)


@router.get("/dealers/{dealer_id}/accruals", response_model=DealerAccrualSummary)
def dealer_summary(dealer_id: str, request: Request, program_id: Optional[str] = None) -> DealerAccrualSummary:
    return _engine(request).reporting.dealer_summary(dealer_id, program_id)
