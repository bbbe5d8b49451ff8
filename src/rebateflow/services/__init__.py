"""Incentive accrual engine services and the facade that wires them."""

from __future__ import annotations

from rebateflow.core.clock import Clock, utcnow
from rebateflow.core.config import AppSettings
from rebateflow.persistence import Stores, create_persistence
from rebateflow.services.batch import BatchAccrualRunner
from rebateflow.services.calculator import AccrualCalculator
from rebateflow.services.coop import CoopAccrualRunner
from rebateflow.services.enrollment import EnrollmentTracker
from rebateflow.services.finalize import AccrualFinalizer
from rebateflow.services.programs import ProgramService
from rebateflow.services.projection import ProjectionEngine
from rebateflow.services.reporting import AccrualReporter


class RebateEngine:
    """All engine services over one set of stores, settings and clock."""

    def __init__(self, stores: Stores, settings: AppSettings | None = None, clock: Clock = utcnow) -> None:
        if settings is None:
            settings = AppSettings()
        self.settings = settings
        self.stores = stores
        deps = {**stores._asdict(), "settings": settings, "clock": clock}

        self.programs = ProgramService(**deps)
        self.enrollment = EnrollmentTracker(**deps)
        self.calculator = AccrualCalculator(**deps)
        self.batch = BatchAccrualRunner(**deps)
        self.coop = CoopAccrualRunner(**deps)
        self.finalizer = AccrualFinalizer(**deps)
        self.projection = ProjectionEngine(**deps)
        self.reporting = AccrualReporter(**deps)

    @classmethod
    def from_settings(cls, settings: AppSettings | None = None) -> "RebateEngine":
        if settings is None:
            settings = AppSettings()
        return cls(create_persistence(settings), settings)


__all__ = [
    "AccrualCalculator",
    "AccrualFinalizer",
    "AccrualReporter",
    "BatchAccrualRunner",
    "CoopAccrualRunner",
    "EnrollmentTracker",
    "ProgramService",
    "ProjectionEngine",
    "RebateEngine",
]
