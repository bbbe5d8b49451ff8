"""Dealer enrollment state machine: pending -> active -> withdrawn."""

from __future__ import annotations

import logging

from rebateflow.core.exceptions import EnrollmentError, EnrollmentNotFoundError
from rebateflow.models.enrollment import Enrollment, EnrollmentStatus
from rebateflow.models.program import ProgramStatus
from rebateflow.services.base import BaseService

logger = logging.getLogger(__name__)


class EnrollmentTracker(BaseService):
    """Gates which dealers take part in accrual runs."""

    def enroll(
        self,
        program_id: str,
        dealer_id: str,
        *,
        dealer_tier: str | None = None,
        dealer_region: str | None = None,
        terms_version: str = "",
    ) -> Enrollment:
        program = self._load_program(program_id)
        now = self._clock()

        if program.status != ProgramStatus.ACTIVE:
            raise EnrollmentError("Program is not active")
        if program.enrollment_deadline is not None and now > program.enrollment_deadline:
            raise EnrollmentError("Enrollment deadline has passed")
        if not program.is_eligible(dealer_tier, dealer_region):
            raise EnrollmentError("Dealer is not eligible for this program")
        if self._enrollments.get_enrollment(program.id, dealer_id) is not None:
            raise EnrollmentError("Dealer is already enrolled in this program")

        enrollment = Enrollment(
            program_id=program.id,
            dealer_id=dealer_id,
            status=EnrollmentStatus.PENDING if program.requires_approval else EnrollmentStatus.ACTIVE,
            enrolled_at=now,
            approved_at=None if program.requires_approval else now,
            terms_version=terms_version,
        )
        self._enrollments.create_enrollment(enrollment)
        logger.info("Dealer %s enrolled in program %s (%s)", dealer_id, program.id, enrollment.status)
        return enrollment

    def _require(self, program_id: str, dealer_id: str) -> Enrollment:
        enrollment = self._enrollments.get_enrollment(program_id, dealer_id)
        if enrollment is None:
            raise EnrollmentNotFoundError(program_id, dealer_id)
        return enrollment

    def approve(self, program_id: str, dealer_id: str, approved_by: str = "") -> Enrollment:
        enrollment = self._require(program_id, dealer_id)
        if enrollment.status != EnrollmentStatus.PENDING:
            raise EnrollmentError(f"Only pending enrollments can be approved (status={enrollment.status})")
        enrollment.status = EnrollmentStatus.ACTIVE
        enrollment.approved_at = self._clock()
        enrollment.approved_by = approved_by
        return self._enrollments.save_enrollment(enrollment)

    def withdraw(self, program_id: str, dealer_id: str, reason: str = "") -> Enrollment:
        enrollment = self._require(program_id, dealer_id)
        if enrollment.status == EnrollmentStatus.WITHDRAWN:
            raise EnrollmentError("Enrollment is already withdrawn")
        enrollment.status = EnrollmentStatus.WITHDRAWN
        enrollment.withdrawn_at = self._clock()
        enrollment.withdraw_reason = reason
        return self._enrollments.save_enrollment(enrollment)

    def active_dealers(self, program_id: str) -> list[str]:
        return [e.dealer_id for e in self._enrollments.list_enrollments(program_id, EnrollmentStatus.ACTIVE)]

    def dealer_enrollments(self, dealer_id: str, status: str | None = None) -> list[Enrollment]:
        return self._enrollments.list_dealer_enrollments(dealer_id, status)
