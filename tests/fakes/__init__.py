"""Shared test doubles: memory backends, a settable clock, a failing order source."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterable

from rebateflow.models.order import Order, OrderItem
from rebateflow.persistence.memory_backend import (
    MemoryAccrualStore,
    MemoryCacheBackend,
    MemoryEnrollmentStore,
    MemoryOrderSource,
    MemoryProgramStore,
)

NOW = datetime(2026, 1, 20, 12, 0, tzinfo=timezone.utc)
JAN_START = datetime(2026, 1, 1, tzinfo=timezone.utc)
JAN_END = datetime(2026, 1, 31, 23, 59, 59, tzinfo=timezone.utc)

TIERED_RULES = {
    "kind": "tiered",
    "tiers": [
        {"name": "Base", "min_volume": "0", "rate": "0.01"},
        {"name": "Growth", "min_volume": "20000", "rate": "0.03"},
    ],
    "max_payout_per_dealer": "500",
}


def make_order(dealer_id: str, amount: str, *, created_at: datetime | None = None,
               status: str = "delivered", category: str | None = "equipment",
               order_id: str | None = None) -> Order:
    created_at = created_at or datetime(2026, 1, 10, tzinfo=timezone.utc)
    return Order(
        id=order_id or f"ORD-{dealer_id}-{created_at:%Y%m%d%H%M%S}-{amount}",
        dealer_id=dealer_id,
        status=status,
        created_at=created_at,
        items=[OrderItem(product_id="P-1", category_id=category, total_price=Decimal(amount))],
    )


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now += timedelta(**delta)
        return self.now


class FailingOrderSource(MemoryOrderSource):
    """MemoryOrderSource that raises for the given dealers."""

    def __init__(self, failing: Iterable[str] = ()) -> None:
        super().__init__()
        self.failing = set(failing)

    def list_orders(
        self, dealer_id: str, start: datetime, end: datetime, statuses: Iterable[str],
    ) -> list[Order]:
        if dealer_id in self.failing:
            raise RuntimeError(f"order service unavailable for {dealer_id}")
        return super().list_orders(dealer_id, start, end, statuses)


__all__ = [
    "JAN_END",
    "JAN_START",
    "NOW",
    "TIERED_RULES",
    "FailingOrderSource",
    "FixedClock",
    "MemoryAccrualStore",
    "MemoryCacheBackend",
    "MemoryEnrollmentStore",
    "MemoryOrderSource",
    "MemoryProgramStore",
    "make_order",
]
