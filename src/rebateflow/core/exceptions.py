"""RebateFlow exception hierarchy."""

from __future__ import annotations

from datetime import datetime


class RebateFlowError(Exception):
    """Base exception for all RebateFlow errors."""


class NotFoundError(RebateFlowError):
    """A referenced record does not exist."""


class ProgramNotFoundError(NotFoundError):
    def __init__(self, program_id: str) -> None:
        self.program_id = program_id
        super().__init__(f"Program not found: {program_id}")


class DealerNotFoundError(NotFoundError):
    def __init__(self, dealer_id: str) -> None:
        self.dealer_id = dealer_id
        super().__init__(f"Dealer not found: {dealer_id}")


class EnrollmentNotFoundError(NotFoundError):
    def __init__(self, program_id: str, dealer_id: str) -> None:
        self.program_id = program_id
        self.dealer_id = dealer_id
        super().__init__(f"Dealer {dealer_id} is not enrolled in program {program_id}")


class InvalidStateError(RebateFlowError):
    """Operation rejected because of the current state of a record."""


class AccrualLockedError(InvalidStateError):
    """Accrual is finalized or paid and may not be recalculated without override."""

    def __init__(self, program_id: str, dealer_id: str, period_start: datetime, status: str) -> None:
        self.program_id = program_id
        self.dealer_id = dealer_id
        self.period_start = period_start
        self.status = status
        super().__init__(f"Accrual already finalized (status={status})")


class EnrollmentError(InvalidStateError):
    """Enrollment action not allowed."""


class ProgramStateError(InvalidStateError):
    """Program lifecycle or type does not permit the operation."""


class RulesValidationError(RebateFlowError):
    """Program rules failed validation at the program boundary."""


class CacheError(RebateFlowError):
    """Redis cache operation failed."""


class StoreError(RebateFlowError):
    """Backing store (DynamoDB) operation failed."""
