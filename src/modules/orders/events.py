"""Outbound events for the order saga."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Tuple

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class OrderItemPayload:
    product_id: str
    product_name: str
    quantity: int
    unit_price: Decimal


@dataclass(frozen=True, kw_only=True)
class OrderEvent(DomainEvent):
    """Snapshot of an order published after every saga step.

    ``failure_reason`` is only populated once the order entered a failure
    path (inventory or payment failure).
    """

    customer_id: str
    status: str
    total_amount: Decimal
    saga_id: str
    items: Tuple[OrderItemPayload, ...] = field(default_factory=tuple)
    failure_reason: Optional[str] = None

    @property
    def is_failure(self) -> bool:
        return self.failure_reason is not None
