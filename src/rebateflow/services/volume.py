"""Qualifying purchase volume for a dealer and period."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Iterable

from rebateflow.core.config import AccrualConfig
from rebateflow.core.protocols import IOrderSource
from rebateflow.models.order import Order
from rebateflow.models.program import FlatRateRules, TieredRules


def item_qualifies(category_id: str | None, rules: FlatRateRules | TieredRules) -> bool:
    """Allow-list wins outright when present; otherwise the deny-list applies."""
    category = category_id or ""
    if rules.qualifying_products:
        return category in rules.qualifying_products
    if rules.excluded_products:
        return category not in rules.excluded_products
    return True


def qualifying_volume(orders: Iterable[Order], rules: FlatRateRules | TieredRules) -> Decimal:
    """Sum ``total_price`` of qualifying line items; never negative."""
    total = sum(
        (item.total_price for order in orders for item in order.items
         if item_qualifies(item.category_id, rules)),
        Decimal("0"),
    )
    return max(total, Decimal("0"))


class QualifyingVolumeCalculator:
    """Reads a dealer's orders and applies the program's product filters.

    Finalizable accruals count only completed sales (``qualifying_statuses``);
    projections pass the wider ``projection_statuses`` set explicitly.
    """

    def __init__(self, orders: IOrderSource, config: AccrualConfig) -> None:
        self._orders = orders
        self._config = config

    def calculate(
        self,
        dealer_id: str,
        start: datetime,
        end: datetime,
        rules: FlatRateRules | TieredRules,
        statuses: Iterable[str] | None = None,
    ) -> Decimal:
        if statuses is None:
            statuses = self._config.qualifying_statuses
        orders = self._orders.list_orders(dealer_id, start, end, statuses)
        return qualifying_volume(orders, rules)
