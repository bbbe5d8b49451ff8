"""Batch accrual runs across every active enrollment of a program."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import uuid4

from rebateflow.core.exceptions import AccrualLockedError, ProgramStateError
from rebateflow.models.accrual import BatchAccrualRunResult, DealerError, period_type_for
from rebateflow.models.enrollment import EnrollmentStatus
from rebateflow.models.program import Program, ProgramType
from rebateflow.services.base import BaseService
from rebateflow.services.calculator import AccrualCalculator
from rebateflow.services.periods import period_bounds

logger = logging.getLogger(__name__)


class BatchAccrualRunner(BaseService):
    """Runs the accrual calculator for each active dealer of a program.

    Dealers are processed one at a time and each dealer's write is complete on
    its own, so a run can stop between dealers without leaving partial state.
    A dealer's failure is recorded in the result and never stops the loop.
    """

    program_type = ProgramType.REBATE

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._calculator = AccrualCalculator(**kwargs)

    def _require_type(self, program: Program) -> None:
        if program.type != self.program_type:
            raise ProgramStateError(f"Batch accruals only apply to {self.program_type} programs")

    def _window(
        self,
        period_type: str | None,
        period_start: datetime | None,
        period_end: datetime | None,
        now: datetime,
    ) -> tuple[datetime, datetime]:
        if (period_start is None) != (period_end is None):
            raise ValueError("period_start and period_end must be given together")
        if period_start is None or period_end is None:
            return period_bounds(period_type or self._settings.accrual.default_period_type, now)
        if period_type is not None and period_type != period_type_for(period_start, period_end):
            raise ValueError(
                f"period_type {period_type} does not match the window {period_start} to {period_end}"
            )
        return period_start, period_end

    def run(
        self,
        program_id: str,
        *,
        period_type: str | None = None,
        period_start: datetime | None = None,
        period_end: datetime | None = None,
        recalculate: bool = False,
        cancel_event: threading.Event | None = None,
    ) -> BatchAccrualRunResult:
        """Accrue every active enrollment for one period.

        The window is ``period_start``/``period_end`` when given, otherwise the
        calendar period of ``period_type`` (default from settings) containing
        now. A ``period_type`` passed with explicit bounds must describe them.
        """
        started_at = self._clock()
        run_id = f"RUN-{int(started_at.timestamp() * 1000)}-{uuid4().hex[:6]}"

        # Loaded once: every dealer in the run sees the same rules.
        program = self._load_program(program_id)
        self._require_type(program)
        period_start, period_end = self._window(period_type, period_start, period_end, started_at)

        enrollments = self._enrollments.list_enrollments(program.id, status=EnrollmentStatus.ACTIVE)
        logger.info(
            "Accrual run %s started for program %s: %d dealers, %s to %s",
            run_id, program.id, len(enrollments), period_start, period_end,
        )

        processed = 0
        total_accrued = Decimal("0")
        total_final = Decimal("0")
        errors: list[DealerError] = []
        cancelled = False

        for enrollment in enrollments:
            if cancel_event is not None and cancel_event.is_set():
                cancelled = True
                logger.warning("Accrual run %s cancelled after %d dealers", run_id, processed)
                break

            dealer_id = enrollment.dealer_id
            try:
                if not recalculate:
                    existing = self._accruals.get_accrual(program.id, dealer_id, period_start)
                    if existing is not None and existing.is_locked:
                        raise AccrualLockedError(program.id, dealer_id, period_start, existing.status)

                write = self._calculator.calculate_for_program(
                    program, dealer_id, period_start, period_end, recalculate=recalculate,
                )
                self._calculator.sync_enrollment(write.accrual)
            except Exception as exc:
                logger.warning("Accrual run %s: dealer %s failed: %s", run_id, dealer_id, exc)
                errors.append(DealerError(dealer_id=dealer_id, error=str(exc)))
                continue

            processed += 1
            total_accrued += write.accrual.accrued_amount
            total_final += write.accrual.final_amount

        completed_at = self._clock()
        logger.info(
            "Accrual run %s finished: %d processed, %d errors, total accrued %s",
            run_id, processed, len(errors), total_accrued,
        )
        return BatchAccrualRunResult(
            run_id=run_id,
            program_id=program.id,
            period_type=period_type_for(period_start, period_end),
            period_start=period_start,
            period_end=period_end,
            processed_count=processed,
            total_accrued=total_accrued,
            total_final=total_final,
            errors=errors,
            cancelled=cancelled,
            started_at=started_at,
            completed_at=completed_at,
        )
