"""Unit tests for ``OrderAggregate`` creation and item handling."""

from __future__ import annotations

from decimal import Decimal

import pytest

from modules.orders.constants import OrderStatus
from modules.orders.domain import OrderAggregate, OrderItem
from modules.orders.exceptions import OrderValidationError

pytestmark = pytest.mark.unit


def _item(product_id="sku-1", quantity=1, price="10.00"):
    return OrderItem(product_id, f"Product {product_id}", quantity, Decimal(price))


class TestOrderItem:
    def test_total_price(self):
        assert _item(quantity=3, price="2.50").total_price == Decimal("7.50")

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_rejects_non_positive_quantity(self, quantity):
        with pytest.raises(OrderValidationError, match="Quantity"):
            _item(quantity=quantity)

    @pytest.mark.parametrize("price", ["0", "-1.00"])
    def test_rejects_non_positive_price(self, price):
        with pytest.raises(OrderValidationError, match="Unit price"):
            _item(price=price)

    def test_price_is_coerced_to_decimal(self):
        item = OrderItem("sku-1", "Widget", 1, "3.10")
        assert item.unit_price == Decimal("3.10")


class TestCreate:
    def test_new_order_is_pending_with_total(self):
        order = OrderAggregate.create(
            "customer-1", [_item("a", 2, "10.00"), _item("b", 1, "5.50")]
        )

        assert order.status == OrderStatus.PENDING
        assert order.total_amount == Decimal("25.50")
        assert order.version == 0
        assert order.failure_reason is None
        assert order.created_at is not None
        assert order.updated_at is None

    def test_ids_are_distinct_and_fresh(self):
        first = OrderAggregate.create("customer-1", [_item()])
        second = OrderAggregate.create("customer-1", [_item()])

        assert first.id != first.saga_id
        assert {first.id, first.saga_id}.isdisjoint({second.id, second.saga_id})

    def test_rejects_empty_items(self):
        with pytest.raises(OrderValidationError, match="at least one item"):
            OrderAggregate.create("customer-1", [])

    @pytest.mark.parametrize("customer_id", ["", "   ", None])
    def test_rejects_blank_customer(self, customer_id):
        with pytest.raises(OrderValidationError, match="Customer"):
            OrderAggregate.create(customer_id, [_item()])


class TestItems:
    def test_add_item_recomputes_total(self):
        order = OrderAggregate.create("customer-1", [_item("a", 1, "10.00")])
        order.add_item(_item("b", 2, "1.25"))

        assert order.total_amount == Decimal("12.50")
        assert order.total_amount == sum(i.total_price for i in order.items)

    def test_remove_item_recomputes_total(self):
        order = OrderAggregate.create(
            "customer-1", [_item("a", 1, "10.00"), _item("b", 2, "1.25")]
        )
        removed = order.remove_item("a")

        assert removed.product_id == "a"
        assert [i.product_id for i in order.items] == ["b"]
        assert order.total_amount == Decimal("2.50")

    def test_remove_unknown_item(self):
        order = OrderAggregate.create("customer-1", [_item("a")])
        with pytest.raises(OrderValidationError, match="not part of order"):
            order.remove_item("zzz")
        assert order.total_amount == Decimal("10.00")

    def test_items_property_is_a_copy(self):
        order = OrderAggregate.create("customer-1", [_item("a")])
        order.items.append(_item("b"))
        assert len(order.items) == 1

    def test_items_editable_after_saga_started(self):
        order = OrderAggregate.create("customer-1", [_item("a")])
        order.transition_to(OrderStatus.INVENTORY_RESERVED)
        order.add_item(_item("b", 1, "1.00"))
        assert order.total_amount == Decimal("11.00")
