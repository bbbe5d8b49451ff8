"""Protocol interfaces for all RebateFlow abstractions.

Services depend on these Protocols only; backends satisfy them structurally,
no inheritance required, easy to test with isinstance().
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Iterable, Protocol, runtime_checkable

if TYPE_CHECKING:
    from rebateflow.models.accrual import Accrual
    from rebateflow.models.enrollment import Enrollment
    from rebateflow.models.order import Order
    from rebateflow.models.program import Program


# ---------------------------------------------------------------------------
# Programs
# ---------------------------------------------------------------------------

@runtime_checkable
class IProgramStore(Protocol):
    """Program definitions, looked up by id or human code."""

    def get_program(self, id_or_code: str) -> Program | None: ...

    def save_program(self, program: Program) -> Program: ...

    def list_programs(self, type: str | None = None, status: str | None = None) -> list[Program]: ...


# ---------------------------------------------------------------------------
# Enrollments
# ---------------------------------------------------------------------------

@runtime_checkable
class IEnrollmentStore(Protocol):
    """Dealer/program membership, unique per (program, dealer)."""

    def get_enrollment(self, program_id: str, dealer_id: str) -> Enrollment | None: ...

    def create_enrollment(self, enrollment: Enrollment) -> Enrollment: ...

    def save_enrollment(self, enrollment: Enrollment) -> Enrollment: ...

    def list_enrollments(self, program_id: str, status: str | None = None) -> list[Enrollment]: ...

    def list_dealer_enrollments(self, dealer_id: str, status: str | None = None) -> list[Enrollment]: ...

    def apply_accrual(
        self, program_id: str, dealer_id: str, tier_achieved: str,
        tier_progress: Decimal, accrued_total: Decimal,
    ) -> Enrollment: ...


# ---------------------------------------------------------------------------
# Orders (read-only)
# ---------------------------------------------------------------------------

@runtime_checkable
class IOrderSource(Protocol):
    """Dealer orders with line items, scoped by creation time."""

    def list_orders(
        self, dealer_id: str, start: datetime, end: datetime, statuses: Iterable[str],
    ) -> list[Order]: ...


# ---------------------------------------------------------------------------
# Accruals
# ---------------------------------------------------------------------------

@runtime_checkable
class IAccrualStore(Protocol):
    """Accrual rows keyed by (program, dealer, period_start)."""

    def get_accrual(self, program_id: str, dealer_id: str, period_start: datetime) -> Accrual | None: ...

    def upsert_accrual(self, accrual: Accrual, allow_locked: bool = False) -> tuple[Accrual, Accrual | None]: ...

    def list_accruals(self, program_id: str | None = None, dealer_id: str | None = None) -> list[Accrual]: ...

    def finalize_window(self, program_id: str, start: datetime, end: datetime) -> list[Accrual]: ...

    def mark_paid(self, program_id: str, dealer_id: str, period_start: datetime) -> Accrual: ...


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------

@runtime_checkable
class ICacheBackend(Protocol):
    """Redis-compatible cache interface."""

    def get(self, key: str) -> str | None: ...

    def setex(self, key: str, ttl: int, value: str) -> None: ...

    def delete(self, key: str) -> None: ...
