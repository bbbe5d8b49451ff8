"""Shared fixtures: memory stores, a fixed clock and a wired engine."""

from __future__ import annotations

import pytest

from rebateflow.core.config import AppSettings
from rebateflow.persistence import Stores
from rebateflow.services import RebateEngine
from tests.fakes import (
    JAN_START,
    NOW,
    TIERED_RULES,
    FailingOrderSource,
    FixedClock,
    MemoryAccrualStore,
    MemoryEnrollmentStore,
    MemoryProgramStore,
    make_order,
)


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def settings():
    return AppSettings()


@pytest.fixture
def stores():
    return Stores(
        programs=MemoryProgramStore(),
        enrollments=MemoryEnrollmentStore(),
        orders=FailingOrderSource(),
        accruals=MemoryAccrualStore(),
    )


@pytest.fixture
def engine(stores, settings, clock):
    return RebateEngine(stores, settings, clock)


@pytest.fixture
def program(engine):
    """Active tiered rebate program that enrolls dealers without approval."""
    created = engine.programs.create_program(
        code="VOL-Q1",
        name="Q1 Volume Rebate",
        start_date=JAN_START,
        rules=TIERED_RULES,
        requires_approval=False,
    )
    return engine.programs.activate(created.id)


@pytest.fixture
def enroll(engine, stores, program):
    """Register a dealer with the order source and enroll them in ``program``."""

    def _enroll(dealer_id: str, *amounts: str) -> None:
        stores.orders.add_dealer(dealer_id)
        for amount in amounts:
            stores.orders.add_order(make_order(dealer_id, amount))
        engine.enrollment.enroll(program.id, dealer_id)

    return _enroll
