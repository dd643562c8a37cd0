"""Order DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.
These are the contracts between the adapters (DRF serializers, the
broker consumer) and the orchestrator.  DTOs are immutable
(``frozen=True``).

- ``CreateOrderItemDTO`` / ``CreateOrderDTO``: create-order command.
- ``InventoryEventDTO`` / ``PaymentEventDTO``: inbound saga events, parsed
  from the camelCase JSON the inventory and payment services publish.
- ``OrderItemOutputDTO`` / ``OrderOutputDTO``: API responses.

Business rules (positive quantity and price, at least one item) are
enforced by the aggregate, so a bad command always surfaces as
``OrderValidationError`` whatever adapter it came through.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

if TYPE_CHECKING:
    from modules.orders.domain import OrderAggregate


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


class CreateOrderItemDTO(BaseModel):
    """Immutable DTO for a single order line in a creation request."""

    model_config = ConfigDict(frozen=True)

    product_id: str
    product_name: str
    quantity: int
    unit_price: Decimal


class CreateOrderDTO(BaseModel):
    """Immutable DTO for order creation requests."""

    model_config = ConfigDict(frozen=True)

    customer_id: str
    items: List[CreateOrderItemDTO]


# ---------------------------------------------------------------------------
# Inbound saga events
# ---------------------------------------------------------------------------


class _SagaEventDTO(BaseModel):
    """Fields shared by every event the saga consumes.

    ``event_type`` stays a plain string: an unknown type must still parse so
    the handler can log and acknowledge it.
    """

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    event_id: str
    saga_id: str
    order_id: Optional[str] = None
    event_type: str
    reason: Optional[str] = None


class InventoryEventDTO(_SagaEventDTO):
    """Event published by the inventory service."""


class PaymentEventDTO(_SagaEventDTO):
    """Event published by the payment service."""

    transaction_id: Optional[str] = None
    amount: Optional[Decimal] = None


# ---------------------------------------------------------------------------
# Output DTOs
# ---------------------------------------------------------------------------


class OrderItemOutputDTO(BaseModel):
    """Immutable DTO for order item API responses."""

    model_config = ConfigDict(frozen=True)

    product_id: str
    product_name: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal


class OrderOutputDTO(BaseModel):
    """Immutable DTO for order API responses."""

    model_config = ConfigDict(frozen=True)

    id: str
    customer_id: str
    saga_id: str
    status: str
    total_amount: Decimal
    items: List[OrderItemOutputDTO]
    created_at: datetime
    updated_at: Optional[datetime]
    failure_reason: Optional[str]
    version: int

    @classmethod
    def from_entity(cls, order: OrderAggregate) -> OrderOutputDTO:
        return cls(
            id=order.id,
            customer_id=order.customer_id,
            saga_id=order.saga_id,
            status=order.status.value,
            total_amount=order.total_amount,
            items=[
                OrderItemOutputDTO(
                    product_id=item.product_id,
                    product_name=item.product_name,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    total_price=item.total_price,
                )
                for item in order.items
            ],
            created_at=order.created_at,
            updated_at=order.updated_at,
            failure_reason=order.failure_reason,
            version=order.version,
        )
