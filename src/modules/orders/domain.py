"""Order aggregate and its state machine.

The aggregate is a plain in-memory object: repositories rebuild it from
storage, the orchestrator mutates it through the methods below and hands
it back for a version-checked save.  Nothing here touches the database
or the broker.

Invariants:
- ``total_amount`` always equals the sum of the items' ``total_price``.
- ``status`` only changes through ``transition_to``, validated against
  ``VALID_TRANSITIONS``.
- ``id``, ``saga_id``, ``customer_id`` and ``created_at`` never change.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional

import uuid6
from django.utils import timezone

from modules.orders.constants import TERMINAL_STATES, VALID_TRANSITIONS, OrderStatus
from modules.orders.exceptions import InvalidTransition, OrderValidationError


@dataclass(frozen=True)
class OrderItem:
    """Order line.  ``unit_price`` is the price agreed when the line was added."""

    product_id: str
    product_name: str
    quantity: int
    unit_price: Decimal

    def __post_init__(self) -> None:
        if self.quantity is None or self.quantity < 1:
            raise OrderValidationError(
                f"Quantity for product {self.product_id} must be positive."
            )
        if self.unit_price is None or Decimal(self.unit_price) <= 0:
            raise OrderValidationError(
                f"Unit price for product {self.product_id} must be positive."
            )
        object.__setattr__(self, "unit_price", Decimal(self.unit_price))

    @property
    def total_price(self) -> Decimal:
        return self.quantity * self.unit_price


class OrderAggregate:
    """Order aggregate root driven by the saga orchestrator."""

    def __init__(
        self,
        *,
        id: str,
        customer_id: str,
        saga_id: str,
        status: str = OrderStatus.PENDING,
        items: Iterable[OrderItem] = (),
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
        version: int = 0,
        failure_reason: Optional[str] = None,
    ) -> None:
        self.id = id
        self.customer_id = customer_id
        self.saga_id = saga_id
        self.status = OrderStatus(status)
        self._items: List[OrderItem] = list(items)
        self.total_amount = Decimal("0.00")
        self.created_at = created_at or timezone.now()
        self.updated_at = updated_at
        self.version = version
        self.failure_reason = failure_reason
        self._recalculate_total()

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    @classmethod
    def create(cls, customer_id: str, items: Iterable[OrderItem]) -> OrderAggregate:
        """Start a new order in ``PENDING`` with fresh order and saga ids.

        Raises:
            OrderValidationError: blank customer or no items.
        """
        if not customer_id or not str(customer_id).strip():
            raise OrderValidationError("Customer ID is required.")
        items = list(items)
        if not items:
            raise OrderValidationError("Order must contain at least one item.")

        order = cls(
            id=str(uuid6.uuid7()),
            customer_id=str(customer_id),
            saga_id=str(uuid6.uuid7()),
            status=OrderStatus.PENDING,
        )
        for item in items:
            order.add_item(item)
        return order

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    @property
    def items(self) -> List[OrderItem]:
        return list(self._items)

    def add_item(self, item: OrderItem) -> None:
        self._items.append(item)
        self._recalculate_total()

    def remove_item(self, product_id: str) -> OrderItem:
        """Remove the first line for *product_id* and return it."""
        for index, item in enumerate(self._items):
            if item.product_id == product_id:
                removed = self._items.pop(index)
                self._recalculate_total()
                return removed
        raise OrderValidationError(f"Product {product_id} is not part of order {self.id}.")

    def _recalculate_total(self) -> None:
        self.total_amount = sum(
            (item.total_price for item in self._items), Decimal("0.00")
        )

    # ------------------------------------------------------------------
    # State Machine
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        """Return ``True`` if the order is in a terminal state."""
        return self.status in TERMINAL_STATES

    def can_transition_to(self, new_status: str) -> bool:
        """Check whether transitioning to *new_status* is valid."""
        return new_status in VALID_TRANSITIONS.get(self.status, set())

    def transition_to(self, new_status: str) -> None:
        """Move to *new_status* or raise ``InvalidTransition`` leaving the order untouched."""
        if not self.can_transition_to(new_status):
            raise InvalidTransition(self.status, new_status)
        now = timezone.now()
        self.status, self.updated_at = OrderStatus(new_status), now

    def mark_failed(self, reason: str) -> None:
        """Record why the saga failed.  Always paired with a transition."""
        self.failure_reason = reason
        self.updated_at = timezone.now()

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def __repr__(self) -> str:
        return (
            f"OrderAggregate(id={self.id!r}, status={self.status.value}, "
            f"version={self.version})"
        )
