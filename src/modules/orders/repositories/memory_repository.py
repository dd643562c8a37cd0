"""In-memory Order repository.

Same contract as ``OrderDjangoRepository`` (including the version check)
without a database.  Aggregates are copied on the way in and out so a
caller never shares state with the store or with another caller.
"""

from __future__ import annotations

import copy
import threading
from datetime import datetime
from typing import Dict, List, Optional

from modules.orders.domain import OrderAggregate
from modules.orders.exceptions import ConcurrencyConflict
from modules.orders.repositories.interfaces import IOrderRepository


class InMemoryOrderRepository(IOrderRepository):
    def __init__(self) -> None:
        self._orders: Dict[str, OrderAggregate] = {}
        self._lock = threading.Lock()

    def find_by_id(self, id: str) -> Optional[OrderAggregate]:
        with self._lock:
            order = self._orders.get(id)
            return copy.deepcopy(order) if order else None

    def find_by_saga_id(self, saga_id: str) -> Optional[OrderAggregate]:
        with self._lock:
            for order in self._orders.values():
                if order.saga_id == saga_id:
                    return copy.deepcopy(order)
        return None

    def save(self, entity: OrderAggregate) -> OrderAggregate:
        with self._lock:
            stored = self._orders.get(entity.id)
            stored_version = stored.version if stored else 0
            if entity.version != stored_version:
                raise ConcurrencyConflict(entity.id, entity.version)
            entity.version += 1
            self._orders[entity.id] = copy.deepcopy(entity)
        return entity

    def find_by_status(self, status: str) -> List[OrderAggregate]:
        return self._select(lambda order: order.status == status)

    def find_stale(self, status: str, older_than: datetime) -> List[OrderAggregate]:
        stale = self._select(
            lambda order: order.status == status and order.created_at < older_than
        )
        return sorted(stale, key=lambda order: order.created_at)

    def find_by_customer(self, customer_id: str) -> List[OrderAggregate]:
        orders = self._select(lambda order: order.customer_id == customer_id)
        return sorted(orders, key=lambda order: order.created_at, reverse=True)

    def _select(self, predicate) -> List[OrderAggregate]:
        with self._lock:
            return [copy.deepcopy(o) for o in self._orders.values() if predicate(o)]
