"""Order event codec.

Maps an aggregate plus the saga step that just ran to the ``OrderEvent``
published on the order events topic, and converts events to and from the
JSON wire format shared with the inventory and payment services.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Mapping

from modules.orders.constants import OrderEventType, OrderStatus
from modules.orders.domain import OrderAggregate
from modules.orders.events import OrderEvent, OrderItemPayload

STATUS_EVENT_TYPES: dict[str, str] = {
    OrderStatus.PENDING: OrderEventType.ORDER_CREATED,
    OrderStatus.INVENTORY_RESERVED: OrderEventType.ORDER_INVENTORY_RESERVED,
    OrderStatus.INVENTORY_FAILED: OrderEventType.ORDER_INVENTORY_FAILED,
    OrderStatus.PAYMENT_PROCESSING: OrderEventType.ORDER_PAYMENT_PROCESSING,
    OrderStatus.PAYMENT_COMPLETED: OrderEventType.ORDER_PAYMENT_COMPLETED,
    OrderStatus.PAYMENT_FAILED: OrderEventType.ORDER_PAYMENT_FAILED,
    OrderStatus.COMPLETED: OrderEventType.ORDER_COMPLETED,
    OrderStatus.CANCELLED: OrderEventType.ORDER_CANCELLED,
    OrderStatus.COMPENSATING: OrderEventType.ORDER_COMPENSATION_STARTED,
}

# snake_case attribute -> camelCase wire key
_WIRE_KEYS = {
    "event_id": "eventId",
    "timestamp": "timestamp",
    "aggregate_id": "aggregateId",
    "event_type": "eventType",
    "customer_id": "customerId",
    "status": "status",
    "total_amount": "totalAmount",
    "items": "items",
    "saga_id": "sagaId",
    "failure_reason": "failureReason",
}
_ITEM_WIRE_KEYS = {
    "product_id": "productId",
    "product_name": "productName",
    "quantity": "quantity",
    "unit_price": "unitPrice",
}


def _check_exhaustive() -> None:
    missing_statuses = set(OrderStatus) - set(STATUS_EVENT_TYPES)
    if missing_statuses:
        raise RuntimeError(f"No event type mapped for statuses: {sorted(missing_statuses)}")
    unmapped_events = set(OrderEventType) - set(STATUS_EVENT_TYPES.values())
    if unmapped_events:
        raise RuntimeError(f"Event types never emitted: {sorted(unmapped_events)}")


_check_exhaustive()


class OrderEventCodec:
    """Builds outbound events and their wire representation."""

    @staticmethod
    def event_type_for_status(status: str) -> str:
        return STATUS_EVENT_TYPES[OrderStatus(status)]

    @staticmethod
    def encode(order: OrderAggregate, event_type: str) -> OrderEvent:
        """Snapshot *order* into a fresh event of *event_type*."""
        return OrderEvent(
            aggregate_id=order.id,
            event_type=OrderEventType(event_type),
            customer_id=order.customer_id,
            status=order.status,
            total_amount=order.total_amount,
            saga_id=order.saga_id,
            items=tuple(
                OrderItemPayload(
                    product_id=item.product_id,
                    product_name=item.product_name,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                )
                for item in order.items
            ),
            failure_reason=order.failure_reason,
        )

    @staticmethod
    def to_message(event: OrderEvent) -> Dict[str, Any]:
        data = event.to_dict()
        message = {_WIRE_KEYS[key]: value for key, value in data.items()}
        message["items"] = [
            {_ITEM_WIRE_KEYS[key]: value for key, value in item.items()}
            for item in data["items"]
        ]
        return message

    @staticmethod
    def from_message(message: Mapping[str, Any]) -> OrderEvent:
        items = tuple(
            OrderItemPayload(
                product_id=item["productId"],
                product_name=item["productName"],
                quantity=int(item["quantity"]),
                unit_price=Decimal(str(item["unitPrice"])),
            )
            for item in message.get("items") or []
        )
        return OrderEvent(
            event_id=message["eventId"],
            timestamp=datetime.fromisoformat(message["timestamp"]),
            aggregate_id=message["aggregateId"],
            event_type=OrderEventType(message["eventType"]),
            customer_id=message["customerId"],
            status=OrderStatus(message["status"]),
            total_amount=Decimal(str(message["totalAmount"])),
            saga_id=message["sagaId"],
            items=items,
            failure_reason=message.get("failureReason"),
        )


__all__ = ["OrderEventCodec", "STATUS_EVENT_TYPES"]
