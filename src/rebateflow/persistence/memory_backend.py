"""In-memory backends for unit tests and local runs, dict-backed.

Each store serializes writes through a lock so that read-check-write sequences
(upsert, finalize, enrollment increments) are atomic per key.
"""

from __future__ import annotations

import threading
from datetime import datetime
from decimal import Decimal
from typing import Iterable

from rebateflow.core.clock import ensure_utc, utcnow
from rebateflow.core.exceptions import (
    AccrualLockedError,
    DealerNotFoundError,
    EnrollmentError,
    EnrollmentNotFoundError,
    InvalidStateError,
    NotFoundError,
)
from rebateflow.models.accrual import Accrual, AccrualStatus
from rebateflow.models.enrollment import Enrollment
from rebateflow.models.order import Order
from rebateflow.models.program import Program

# Fields an upsert recomputes; identity, status and lifecycle stamps are kept.
ACCRUAL_COMPUTED_FIELDS = (
    "period_end",
    "qualifying_volume",
    "rebate_rate",
    "accrued_amount",
    "final_amount",
    "tier_achieved",
    "tier_progress",
    "calculated_at",
)


class MemoryProgramStore:
    """Dict-backed IProgramStore."""

    def __init__(self) -> None:
        self._programs: dict[str, Program] = {}
        self._lock = threading.Lock()

    def get_program(self, id_or_code: str) -> Program | None:
        program = self._programs.get(id_or_code)
        if program is None:
            program = next((p for p in self._programs.values() if p.code == id_or_code), None)
        return program.model_copy(deep=True) if program else None

    def save_program(self, program: Program) -> Program:
        with self._lock:
            self._programs[program.id] = program.model_copy(deep=True)
        return program

    def list_programs(self, type: str | None = None, status: str | None = None) -> list[Program]:
        out = [
            p.model_copy(deep=True) for p in self._programs.values()
            if (type is None or p.type == type) and (status is None or p.status == status)
        ]
        return sorted(out, key=lambda p: p.start_date, reverse=True)


class MemoryEnrollmentStore:
    """Dict-backed IEnrollmentStore."""

    def __init__(self) -> None:
        self._enrollments: dict[tuple[str, str], Enrollment] = {}
        self._lock = threading.Lock()

    def get_enrollment(self, program_id: str, dealer_id: str) -> Enrollment | None:
        enrollment = self._enrollments.get((program_id, dealer_id))
        return enrollment.model_copy(deep=True) if enrollment else None

    def create_enrollment(self, enrollment: Enrollment) -> Enrollment:
        key = (enrollment.program_id, enrollment.dealer_id)
        with self._lock:
            if key in self._enrollments:
                raise EnrollmentError("Dealer is already enrolled in this program")
            self._enrollments[key] = enrollment.model_copy(deep=True)
        return enrollment

    def save_enrollment(self, enrollment: Enrollment) -> Enrollment:
        with self._lock:
            self._enrollments[(enrollment.program_id, enrollment.dealer_id)] = enrollment.model_copy(deep=True)
        return enrollment

    def list_enrollments(self, program_id: str, status: str | None = None) -> list[Enrollment]:
        return [
            e.model_copy(deep=True) for (pid, _), e in sorted(self._enrollments.items())
            if pid == program_id and (status is None or e.status == status)
        ]

    def list_dealer_enrollments(self, dealer_id: str, status: str | None = None) -> list[Enrollment]:
        out = [
            e.model_copy(deep=True) for e in self._enrollments.values()
            if e.dealer_id == dealer_id and (status is None or e.status == status)
        ]
        return sorted(out, key=lambda e: e.enrolled_at, reverse=True)

    def apply_accrual(
        self, program_id: str, dealer_id: str, tier_achieved: str,
        tier_progress: Decimal, accrued_total: Decimal,
    ) -> Enrollment:
        with self._lock:
            enrollment = self._enrollments.get((program_id, dealer_id))
            if enrollment is None:
                raise EnrollmentNotFoundError(program_id, dealer_id)
            enrollment.tier_achieved = tier_achieved
            enrollment.tier_progress = tier_progress
            enrollment.accrued_amount = accrued_total
            return enrollment.model_copy(deep=True)


class MemoryOrderSource:
    """List-backed IOrderSource. Dealers must be registered to be known."""

    def __init__(self) -> None:
        self._dealers: set[str] = set()
        self._orders: list[Order] = []

    def add_dealer(self, dealer_id: str) -> None:
        self._dealers.add(dealer_id)

    def add_order(self, order: Order) -> Order:
        self._dealers.add(order.dealer_id)
        self._orders.append(order)
        return order

    def list_orders(
        self, dealer_id: str, start: datetime, end: datetime, statuses: Iterable[str],
    ) -> list[Order]:
        if dealer_id not in self._dealers:
            raise DealerNotFoundError(dealer_id)
        start, end = ensure_utc(start), ensure_utc(end)
        wanted = set(statuses)
        return [
            o for o in self._orders
            if o.dealer_id == dealer_id and o.status in wanted and start <= o.created_at <= end
        ]


class MemoryAccrualStore:
    """Dict-backed IAccrualStore."""

    def __init__(self) -> None:
        self._accruals: dict[tuple[str, str, datetime], Accrual] = {}
        self._lock = threading.Lock()

    def get_accrual(self, program_id: str, dealer_id: str, period_start: datetime) -> Accrual | None:
        accrual = self._accruals.get((program_id, dealer_id, ensure_utc(period_start)))
        return accrual.model_copy(deep=True) if accrual else None

    def upsert_accrual(self, accrual: Accrual, allow_locked: bool = False) -> tuple[Accrual, Accrual | None]:
        with self._lock:
            existing = self._accruals.get(accrual.key)
            if existing is None:
                stored = accrual.model_copy(update={"status": AccrualStatus.CALCULATED}, deep=True)
                self._accruals[accrual.key] = stored
                return stored.model_copy(deep=True), None
            if existing.is_locked and not allow_locked:
                raise AccrualLockedError(accrual.program_id, accrual.dealer_id, accrual.period_start, existing.status)
            previous = existing.model_copy(deep=True)
            stored = existing.model_copy(
                update={f: getattr(accrual, f) for f in ACCRUAL_COMPUTED_FIELDS}, deep=True,
            )
            self._accruals[accrual.key] = stored
            return stored.model_copy(deep=True), previous

    def list_accruals(self, program_id: str | None = None, dealer_id: str | None = None) -> list[Accrual]:
        out = [
            a.model_copy(deep=True) for a in self._accruals.values()
            if (program_id is None or a.program_id == program_id)
            and (dealer_id is None or a.dealer_id == dealer_id)
        ]
        return sorted(out, key=lambda a: (a.period_start, a.dealer_id), reverse=True)

    def finalize_window(self, program_id: str, start: datetime, end: datetime) -> list[Accrual]:
        start, end = ensure_utc(start), ensure_utc(end)
        now = utcnow()
        finalized: list[Accrual] = []
        with self._lock:
            for a in self._accruals.values():
                if (a.program_id == program_id and a.status == AccrualStatus.CALCULATED
                        and a.period_start >= start and a.period_end <= end):
                    a.status = AccrualStatus.FINALIZED
                    a.finalized_at = now
                    finalized.append(a.model_copy(deep=True))
        return finalized

    def mark_paid(self, program_id: str, dealer_id: str, period_start: datetime) -> Accrual:
        with self._lock:
            accrual = self._accruals.get((program_id, dealer_id, ensure_utc(period_start)))
            if accrual is None:
                raise NotFoundError(f"No accrual for program {program_id}, dealer {dealer_id}")
            if accrual.status != AccrualStatus.FINALIZED:
                raise InvalidStateError(f"Only finalized accruals can be paid (status={accrual.status})")
            accrual.status = AccrualStatus.PAID
            accrual.paid_at = utcnow()
            return accrual.model_copy(deep=True)


class MemoryCacheBackend:
    """Dict-backed ICacheBackend."""

    def __init__(self) -> None:
        self._store: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._store.get(key)

    def setex(self, key: str, ttl: int, value: str) -> None:
        self._store[key] = value

    def delete(self, key: str) -> None:
        self._store.pop(key, None)
