"""Order repository interface (the order store).

Extends ``IRepository[OrderAggregate]`` with the saga look-up and the
read-only queries used by operators and the query side.

``save`` is an optimistic-concurrency write: it succeeds only if the
stored version still equals ``order.version``, then bumps the version on
both the stored row and the in-memory aggregate.  Otherwise it raises
``ConcurrencyConflict`` and stores nothing.

The orchestrator depends exclusively on this contract (DIP).
"""

from __future__ import annotations

from abc import abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.orders.domain import OrderAggregate


class IOrderRepository(IRepository["OrderAggregate"]):
    """Repository contract for the Order aggregate root."""

    @abstractmethod
    def find_by_id(self, id: str) -> Optional[OrderAggregate]:
        """Retrieve an order with its items, or ``None``."""

    @abstractmethod
    def find_by_saga_id(self, saga_id: str) -> Optional[OrderAggregate]:
        """Retrieve the order a saga belongs to, or ``None``."""

    @abstractmethod
    def save(self, entity: OrderAggregate) -> OrderAggregate:
        """Version-checked write of the order and its items.

        Raises:
            ConcurrencyConflict: the stored version differs from ``entity.version``.
        """

    @abstractmethod
    def find_by_status(self, status: str) -> List[OrderAggregate]:
        """All orders currently in *status*."""

    @abstractmethod
    def find_stale(self, status: str, older_than: datetime) -> List[OrderAggregate]:
        """Orders in *status* created before *older_than* (stuck sagas)."""

    @abstractmethod
    def find_by_customer(self, customer_id: str) -> List[OrderAggregate]:
        """A customer's orders, newest first."""
