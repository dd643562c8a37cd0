"""Order saga constants.

Defines the order status choices, the saga state machine and the event
type vocabularies exchanged with the inventory and payment services.
"""

from django.db import models


class OrderStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    INVENTORY_RESERVED = "INVENTORY_RESERVED", "Inventory reserved"
    INVENTORY_FAILED = "INVENTORY_FAILED", "Inventory failed"
    PAYMENT_PROCESSING = "PAYMENT_PROCESSING", "Payment processing"
    PAYMENT_COMPLETED = "PAYMENT_COMPLETED", "Payment completed"
    PAYMENT_FAILED = "PAYMENT_FAILED", "Payment failed"
    COMPLETED = "COMPLETED", "Completed"
    CANCELLED = "CANCELLED", "Cancelled"
    COMPENSATING = "COMPENSATING", "Compensating"


VALID_TRANSITIONS: dict[str, set[str]] = {
    OrderStatus.PENDING: {
        OrderStatus.INVENTORY_RESERVED,
        OrderStatus.INVENTORY_FAILED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.INVENTORY_RESERVED: {
        OrderStatus.PAYMENT_PROCESSING,
        OrderStatus.COMPENSATING,
    },
    OrderStatus.PAYMENT_PROCESSING: {
        OrderStatus.PAYMENT_COMPLETED,
        OrderStatus.PAYMENT_FAILED,
    },
    OrderStatus.PAYMENT_COMPLETED: {OrderStatus.COMPLETED},
    OrderStatus.PAYMENT_FAILED: {OrderStatus.COMPENSATING, OrderStatus.CANCELLED},
    OrderStatus.INVENTORY_FAILED: {OrderStatus.COMPENSATING, OrderStatus.CANCELLED},
    OrderStatus.COMPENSATING: {OrderStatus.CANCELLED},
    OrderStatus.COMPLETED: set(),
    OrderStatus.CANCELLED: set(),
}

TERMINAL_STATES: set[str] = {OrderStatus.COMPLETED, OrderStatus.CANCELLED}


class OrderEventType(models.TextChoices):
    """Outbound events published on the order events topic."""

    ORDER_CREATED = "ORDER_CREATED"
    ORDER_INVENTORY_RESERVED = "ORDER_INVENTORY_RESERVED"
    ORDER_INVENTORY_FAILED = "ORDER_INVENTORY_FAILED"
    ORDER_PAYMENT_PROCESSING = "ORDER_PAYMENT_PROCESSING"
    ORDER_PAYMENT_COMPLETED = "ORDER_PAYMENT_COMPLETED"
    ORDER_PAYMENT_FAILED = "ORDER_PAYMENT_FAILED"
    ORDER_COMPLETED = "ORDER_COMPLETED"
    ORDER_CANCELLED = "ORDER_CANCELLED"
    ORDER_COMPENSATION_STARTED = "ORDER_COMPENSATION_STARTED"


class InventoryEventType(models.TextChoices):
    INVENTORY_RESERVED = "INVENTORY_RESERVED"
    INVENTORY_RESERVATION_FAILED = "INVENTORY_RESERVATION_FAILED"
    INVENTORY_RELEASED = "INVENTORY_RELEASED"


class PaymentEventType(models.TextChoices):
    PAYMENT_COMPLETED = "PAYMENT_COMPLETED"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    PAYMENT_REFUNDED = "PAYMENT_REFUNDED"
