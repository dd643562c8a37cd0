"""Django ORM implementation of the Order repository.

Satisfies ``IOrderRepository`` using Django's QuerySet API.
Writes are wrapped in ``transaction.atomic()`` so an order and its items
are persisted together.

Concurrency control is optimistic: updates are issued as
``UPDATE ... WHERE id = %s AND version = %s``; zero affected rows means
another writer got there first and ``ConcurrencyConflict`` is raised.
No row locks are taken.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional

import structlog
from django.db import IntegrityError, transaction
from django.db.models import F, QuerySet

from modules.orders.domain import OrderAggregate, OrderItem
from modules.orders.exceptions import ConcurrencyConflict
from modules.orders.models import OrderItemRecord, OrderRecord
from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def find_by_id(self, id: str) -> Optional[OrderAggregate]:
        record = self._queryset().filter(id=id).first()
        return _to_aggregate(record) if record else None

    def find_by_saga_id(self, saga_id: str) -> Optional[OrderAggregate]:
        record = self._queryset().filter(saga_id=saga_id).first()
        return _to_aggregate(record) if record else None

    def find_by_status(self, status: str) -> List[OrderAggregate]:
        return _to_aggregates(self._queryset().filter(status=status))

    def find_stale(self, status: str, older_than: datetime) -> List[OrderAggregate]:
        queryset = self._queryset().filter(status=status, created_at__lt=older_than)
        return _to_aggregates(queryset.order_by("created_at"))

    def find_by_customer(self, customer_id: str) -> List[OrderAggregate]:
        queryset = self._queryset().filter(customer_id=customer_id)
        return _to_aggregates(queryset.order_by("-created_at"))

    @staticmethod
    def _queryset() -> QuerySet:
        return OrderRecord.objects.prefetch_related("items")

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    @transaction.atomic
    def save(self, entity: OrderAggregate) -> OrderAggregate:
        """Insert a new order (version 0) or update a loaded one.

        Raises:
            ConcurrencyConflict: the stored version is not ``entity.version``.
        """
        expected_version = entity.version
        fields = {
            "customer_id": entity.customer_id,
            "status": entity.status.value,
            "total_amount": entity.total_amount,
            "saga_id": entity.saga_id,
            "failure_reason": entity.failure_reason,
            "created_at": entity.created_at,
            "updated_at": entity.updated_at,
        }

        if expected_version == 0:
            try:
                with transaction.atomic():
                    OrderRecord.objects.create(id=entity.id, version=1, **fields)
            except IntegrityError as exc:
                raise ConcurrencyConflict(entity.id, expected_version) from exc
        else:
            updated = OrderRecord.objects.filter(
                id=entity.id, version=expected_version
            ).update(version=F("version") + 1, **fields)
            if updated == 0:
                logger.warning(
                    "order.save_conflict",
                    order_id=entity.id,
                    expected_version=expected_version,
                )
                raise ConcurrencyConflict(entity.id, expected_version)
            OrderItemRecord.objects.filter(order_id=entity.id).delete()

        OrderItemRecord.objects.bulk_create(
            [
                OrderItemRecord(
                    order_id=entity.id,
                    position=position,
                    product_id=item.product_id,
                    product_name=item.product_name,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    total_price=item.total_price,
                )
                for position, item in enumerate(entity.items)
            ]
        )

        entity.version = expected_version + 1
        logger.info(
            "order.saved",
            order_id=entity.id,
            status=entity.status.value,
            version=entity.version,
        )
        return entity


def _to_aggregate(record: OrderRecord) -> OrderAggregate:
    return OrderAggregate(
        id=record.id,
        customer_id=record.customer_id,
        saga_id=record.saga_id,
        status=record.status,
        items=[
            OrderItem(
                product_id=item.product_id,
                product_name=item.product_name,
                quantity=item.quantity,
                unit_price=item.unit_price,
            )
            for item in record.items.all()
        ],
        created_at=record.created_at,
        updated_at=record.updated_at,
        version=record.version,
        failure_reason=record.failure_reason,
    )


def _to_aggregates(records: Iterable[OrderRecord]) -> List[OrderAggregate]:
    return [_to_aggregate(record) for record in records]
