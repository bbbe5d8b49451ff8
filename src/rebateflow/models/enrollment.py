"""Dealer-to-program membership."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from rebateflow.core.clock import utcnow


class EnrollmentStatus(StrEnum):
    PENDING = "pending"
    ACTIVE = "active"
    WITHDRAWN = "withdrawn"


class Enrollment(BaseModel):
    """Unique per (dealer, program). Tier fields cache the latest accrual."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    program_id: str
    dealer_id: str
    status: EnrollmentStatus = EnrollmentStatus.PENDING
    enrolled_at: datetime = Field(default_factory=utcnow)
    approved_at: Optional[datetime] = None
    approved_by: str = ""
    withdrawn_at: Optional[datetime] = None
    withdraw_reason: str = ""
    terms_version: str = ""
    accrued_amount: Decimal = Decimal("0")
    tier_achieved: str = ""
    tier_progress: Decimal = Decimal("0")
