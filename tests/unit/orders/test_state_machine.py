"""Unit tests for the order status state machine.

Covers:
- Every (from, to) pair: allowed iff listed in ``VALID_TRANSITIONS``.
- A rejected transition leaves status and ``updated_at`` untouched.
- Terminal states have no way out.
"""

from __future__ import annotations

from decimal import Decimal
from itertools import product

import pytest

from modules.orders.constants import TERMINAL_STATES, VALID_TRANSITIONS, OrderStatus
from modules.orders.domain import OrderAggregate, OrderItem
from modules.orders.exceptions import InvalidTransition

pytestmark = pytest.mark.unit

ALL_PAIRS = list(product(OrderStatus, OrderStatus))


def _order(status: OrderStatus) -> OrderAggregate:
    return OrderAggregate(
        id="order-1",
        customer_id="customer-1",
        saga_id="saga-1",
        status=status,
        items=[OrderItem("sku-1", "Widget", 1, Decimal("1.00"))],
    )


class TestTransitionTable:
    def test_every_status_has_an_entry(self):
        assert set(VALID_TRANSITIONS) == set(OrderStatus)

    def test_terminal_states(self):
        assert TERMINAL_STATES == {OrderStatus.COMPLETED, OrderStatus.CANCELLED}
        for status in TERMINAL_STATES:
            assert VALID_TRANSITIONS[status] == set()

    def test_initial_status_is_pending(self):
        order = OrderAggregate.create(
            "customer-1", [OrderItem("sku-1", "Widget", 1, Decimal("1.00"))]
        )
        assert order.status == OrderStatus.PENDING
        assert not order.is_terminal


@pytest.mark.parametrize(("source", "target"), ALL_PAIRS)
def test_transition_allowed_iff_in_table(source, target):
    order = _order(source)
    allowed = target in VALID_TRANSITIONS[source]

    assert order.can_transition_to(target) is allowed

    if allowed:
        order.transition_to(target)
        assert order.status == target
        assert order.updated_at is not None
    else:
        with pytest.raises(InvalidTransition) as exc_info:
            order.transition_to(target)
        assert order.status == source
        assert order.updated_at is None
        assert exc_info.value.from_status == source
        assert exc_info.value.to_status == target


def test_invalid_transition_message_names_both_states():
    order = _order(OrderStatus.PENDING)
    with pytest.raises(InvalidTransition, match="from PENDING to COMPLETED"):
        order.transition_to(OrderStatus.COMPLETED)


def test_happy_path_lifecycle():
    order = _order(OrderStatus.PENDING)
    for status in (
        OrderStatus.INVENTORY_RESERVED,
        OrderStatus.PAYMENT_PROCESSING,
        OrderStatus.PAYMENT_COMPLETED,
        OrderStatus.COMPLETED,
    ):
        order.transition_to(status)
    assert order.is_terminal


def test_mark_failed_keeps_status():
    order = _order(OrderStatus.PAYMENT_PROCESSING)
    order.mark_failed("card declined")
    assert order.status == OrderStatus.PAYMENT_PROCESSING
    assert order.failure_reason == "card declined"
    assert order.updated_at is not None
