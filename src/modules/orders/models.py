"""Persistence models for the order store.

The rows mirror ``OrderAggregate``; the aggregate itself never touches
the ORM.  ``version`` backs optimistic concurrency: the repository only
updates a row whose version still matches the one it loaded.

Orders are never deleted: terminal orders stay for audit and queries.
"""

from __future__ import annotations

from decimal import Decimal

from django.db import models

from modules.orders.constants import OrderStatus


class OrderRecord(models.Model):
    """Stored state of one order saga."""

    id = models.CharField(primary_key=True, max_length=36, editable=False)
    customer_id = models.CharField(max_length=255)
    status = models.CharField(
        max_length=32,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
    )
    total_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
    )
    saga_id = models.CharField(max_length=36, unique=True)
    failure_reason = models.TextField(null=True, blank=True, default=None)  # noqa: DJ01
    version = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField()
    updated_at = models.DateTimeField(null=True, blank=True, default=None)

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "created_at"], name="orders_status_created_idx"),
            models.Index(fields=["customer_id", "-created_at"], name="orders_customer_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.id} ({self.status}, v{self.version})"


class OrderItemRecord(models.Model):
    """Order line, stored in the aggregate's item order (``position``)."""

    order = models.ForeignKey(
        "orders.OrderRecord",
        on_delete=models.CASCADE,
        related_name="items",
    )
    position = models.PositiveIntegerField()
    product_id = models.CharField(max_length=255)
    product_name = models.CharField(max_length=255)
    quantity = models.PositiveIntegerField()
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    total_price = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        db_table = "order_items"
        ordering = ["position"]
        constraints = [
            models.UniqueConstraint(
                fields=["order", "position"],
                name="order_items_position_unique",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.product_name} x{self.quantity} (${self.total_price})"
