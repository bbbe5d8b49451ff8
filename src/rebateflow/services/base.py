"""Base service with common dependency wiring."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from rebateflow.core.clock import Clock, utcnow
from rebateflow.core.config import AppSettings
from rebateflow.core.exceptions import ProgramNotFoundError
from rebateflow.core.protocols import IAccrualStore, IEnrollmentStore, IOrderSource, IProgramStore
from rebateflow.models.program import Program


def quantize(value: Decimal, places: int = 2) -> Decimal:
    """Round half-up to ``places`` decimal places."""
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


class BaseService:
    """Common base for all engine services.

    Stores, settings and the clock are injected at construction time so that
    every service can be exercised against memory backends and a fixed clock.
    """

    def __init__(
        self,
        *,
        settings: AppSettings,
        programs: IProgramStore,
        enrollments: IEnrollmentStore,
        orders: IOrderSource,
        accruals: IAccrualStore,
        clock: Clock = utcnow,
    ) -> None:
        self._settings = settings
        self._programs = programs
        self._enrollments = enrollments
        self._orders = orders
        self._accruals = accruals
        self._clock = clock

    def _load_program(self, program_id: str) -> Program:
        program = self._programs.get_program(program_id)
        if program is None:
            raise ProgramNotFoundError(program_id)
        return program

    def _money(self, value: Decimal) -> Decimal:
        return quantize(value, self._settings.accrual.money_places)
