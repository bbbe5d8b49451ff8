"""Tests for qualifying volume: status window and product-category filters."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from rebateflow.core.config import AccrualConfig
from rebateflow.core.exceptions import DealerNotFoundError
from rebateflow.models.order import Order, OrderItem
from rebateflow.models.program import FlatRateRules
from rebateflow.services.volume import QualifyingVolumeCalculator, item_qualifies, qualifying_volume
from tests.fakes import JAN_END, JAN_START, MemoryOrderSource, make_order


def _rules(**filters):
    return FlatRateRules(rate=Decimal("0.01"), **filters)


def _mixed_order() -> Order:
    return Order(
        id="O-1", dealer_id="D1", status="delivered", created_at=datetime(2026, 1, 5),
        items=[
            OrderItem(product_id="a", category_id="equipment", total_price=Decimal("1000")),
            OrderItem(product_id="b", category_id="parts", total_price=Decimal("200")),
            OrderItem(product_id="c", category_id=None, total_price=Decimal("30")),
        ],
    )


class TestFilters:
    def test_no_filters_keeps_everything(self):
        assert qualifying_volume([_mixed_order()], _rules()) == Decimal("1230")

    def test_allow_list(self):
        assert qualifying_volume([_mixed_order()], _rules(qualifying_products=["equipment"])) == Decimal("1000")

    def test_deny_list(self):
        assert qualifying_volume([_mixed_order()], _rules(excluded_products=["parts"])) == Decimal("1030")

    @pytest.mark.parametrize(("allow", "deny", "expected"), [
        (["equipment"], ["equipment"], Decimal("1000")),  # overlapping: deny ignored
        (["equipment"], ["parts"], Decimal("1000")),  # disjoint
        (["equipment", "parts"], ["parts"], Decimal("1200")),
    ])
    def test_allow_list_wins_over_deny_list(self, allow, deny, expected):
        rules = _rules(qualifying_products=allow, excluded_products=deny)
        assert qualifying_volume([_mixed_order()], rules) == expected

    def test_uncategorized_item_fails_allow_list(self):
        assert not item_qualifies(None, _rules(qualifying_products=["equipment"]))
        assert item_qualifies(None, _rules(excluded_products=["parts"]))

    def test_never_negative(self):
        order = Order(id="R", dealer_id="D1", status="delivered", created_at=datetime(2026, 1, 5),
                      items=[OrderItem(product_id="x", total_price=Decimal("-50"))])
        assert qualifying_volume([order], _rules()) == Decimal("0")


class TestQualifyingVolumeCalculator:
    @pytest.fixture
    def orders(self):
        source = MemoryOrderSource()
        source.add_order(make_order("D1", "100", status="delivered"))
        source.add_order(make_order("D1", "200", status="shipped"))
        source.add_order(make_order("D1", "400", status="processing"))
        source.add_order(make_order("D1", "800", status="cancelled"))
        source.add_order(make_order("D1", "1600", created_at=datetime(2026, 2, 1, tzinfo=timezone.utc)))
        source.add_order(make_order("D1", "3200", created_at=JAN_END))
        source.add_order(make_order("D2", "9999"))
        return source

    def test_completed_sales_only(self, orders):
        calc = QualifyingVolumeCalculator(orders, AccrualConfig())
        assert calc.calculate("D1", JAN_START, JAN_END, _rules()) == Decimal("3500")

    def test_explicit_statuses(self, orders):
        calc = QualifyingVolumeCalculator(orders, AccrualConfig())
        volume = calc.calculate("D1", JAN_START, JAN_END, _rules(), statuses=["processing"])
        assert volume == Decimal("400")

    def test_end_instant_inclusive(self, orders):
        calc = QualifyingVolumeCalculator(orders, AccrualConfig())
        assert calc.calculate("D1", JAN_END, JAN_END, _rules()) == Decimal("3200")

    def test_unknown_dealer(self, orders):
        calc = QualifyingVolumeCalculator(orders, AccrualConfig())
        with pytest.raises(DealerNotFoundError):
            calc.calculate("NOPE", JAN_START, JAN_END, _rules())

    def test_known_dealer_without_orders_is_zero(self, orders):
        orders.add_dealer("D3")
        calc = QualifyingVolumeCalculator(orders, AccrualConfig())
        assert calc.calculate("D3", JAN_START, JAN_END, _rules()) == Decimal("0")
