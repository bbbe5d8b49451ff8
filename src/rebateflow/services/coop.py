"""Co-op fund accruals.

A co-op program accrues into each dealer's marketing fund with the same rules
as a rebate: qualifying volume times the resolved rate, capped per dealer,
stored one row per (program, dealer, period). Claims drawn against the fund
are not tracked here.
"""

from __future__ import annotations

from datetime import datetime

from rebateflow.core.exceptions import ProgramStateError
from rebateflow.models.accrual import Accrual
from rebateflow.models.program import Program, ProgramType
from rebateflow.services.batch import BatchAccrualRunner


class CoopAccrualRunner(BatchAccrualRunner):
    """Single-dealer and batch accruals for co-op programs only."""

    program_type = ProgramType.COOP

    def _require_type(self, program: Program) -> None:
        if program.type != self.program_type:
            raise ProgramStateError(f"Program {program.id} is not a co-op fund")

    def calculate(
        self,
        program_id: str,
        dealer_id: str,
        period_start: datetime,
        period_end: datetime,
        recalculate: bool = False,
    ) -> Accrual:
        program = self._load_program(program_id)
        self._require_type(program)
        write = self._calculator.calculate_for_program(program, dealer_id, period_start, period_end, recalculate)
        self._calculator.sync_enrollment(write.accrual)
        return write.accrual
