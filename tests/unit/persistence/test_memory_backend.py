"""Unit tests for the dict-backed stores."""

from __future__ import annotations

import threading
from decimal import Decimal

import pytest

from rebateflow.core.exceptions import AccrualLockedError
from rebateflow.core.protocols import IAccrualStore, IEnrollmentStore, IOrderSource, IProgramStore
from rebateflow.models.accrual import Accrual, AccrualStatus
from rebateflow.models.enrollment import Enrollment
from rebateflow.persistence import create_memory_persistence
from tests.fakes import JAN_END, JAN_START, MemoryAccrualStore, MemoryEnrollmentStore


def _accrual(**overrides) -> Accrual:
    fields = {"program_id": "P1", "dealer_id": "D1", "period_start": JAN_START, "period_end": JAN_END,
              "final_amount": Decimal("10")}
    fields.update(overrides)
    return Accrual(**fields)


def test_memory_stores_satisfy_protocols():
    stores = create_memory_persistence()
    assert isinstance(stores.programs, IProgramStore)
    assert isinstance(stores.enrollments, IEnrollmentStore)
    assert isinstance(stores.orders, IOrderSource)
    assert isinstance(stores.accruals, IAccrualStore)


class TestMemoryAccrualStore:
    def test_returned_rows_are_copies(self):
        store = MemoryAccrualStore()
        stored, _ = store.upsert_accrual(_accrual())
        stored.final_amount = Decimal("999")
        assert store.get_accrual("P1", "D1", JAN_START).final_amount == Decimal("10")

    def test_concurrent_upserts_leave_one_row(self):
        store = MemoryAccrualStore()
        threads = [
            threading.Thread(target=store.upsert_accrual, args=(_accrual(final_amount=Decimal(n)),))
            for n in range(20)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(store.list_accruals()) == 1

    def test_locked_row_unchanged_on_rejection(self):
        store = MemoryAccrualStore()
        store.upsert_accrual(_accrual())
        store.finalize_window("P1", JAN_START, JAN_END)
        with pytest.raises(AccrualLockedError):
            store.upsert_accrual(_accrual(final_amount=Decimal("1")))
        row = store.get_accrual("P1", "D1", JAN_START)
        assert row.final_amount == Decimal("10")
        assert row.status == AccrualStatus.FINALIZED


class TestMemoryEnrollmentStore:
    def test_apply_accrual_replaces_total(self):
        store = MemoryEnrollmentStore()
        store.create_enrollment(Enrollment(program_id="P1", dealer_id="D1"))
        store.apply_accrual("P1", "D1", "Base", Decimal("40.00"), Decimal("80.00"))
        updated = store.apply_accrual("P1", "D1", "Growth", Decimal("100.00"), Decimal("20.00"))
        assert updated.accrued_amount == Decimal("20.00")
        assert store.get_enrollment("P1", "D1").tier_achieved == "Growth"
