"""Order saga orchestrator (Use Cases).

Drives the order aggregate through the saga in response to client
commands and to events from the inventory and payment services.  Every
operation is one unit of work:

1. load the aggregate (by order id or by saga id),
2. apply one or more state machine transitions,
3. save it with a version check,
4. publish exactly one ``OrderEvent`` keyed by the order id.

A ``ConcurrencyConflict`` on save restarts the unit from a fresh load,
up to ``SAGA_SAVE_MAX_ATTEMPTS`` times.  Publishing happens after the
save and never undoes it: a failed publish is logged only.

Saga steps are idempotent: when an event is delivered again and the
order already sits in the status that event leads to, or in any status
reachable from there, the step returns the order unchanged without
saving or publishing anything.  Any other out-of-order delivery raises
``InvalidTransition``.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import partial
from typing import TYPE_CHECKING, Callable, FrozenSet, Optional, Tuple

import structlog
from django.conf import settings

from modules.orders.codec import OrderEventCodec
from modules.orders.constants import VALID_TRANSITIONS, OrderEventType, OrderStatus
from modules.orders.domain import OrderAggregate, OrderItem
from modules.orders.exceptions import (
    ConcurrencyConflict,
    OrderNotFound,
    OrderStateConflict,
    SagaNotFound,
)

if TYPE_CHECKING:
    from modules.orders.dtos import CreateOrderDTO
    from modules.orders.repositories.interfaces import IOrderRepository
    from shared.domain.bus import IEventBus

logger = structlog.get_logger(__name__)

# Returns the event type to publish, or ``None`` when there is nothing to do.
Mutation = Callable[[OrderAggregate], Optional[str]]


def _reachable_from(status: str) -> FrozenSet[str]:
    seen = {status}
    frontier = [status]
    while frontier:
        for nxt in VALID_TRANSITIONS.get(frontier.pop(), set()):
            if nxt not in seen:
                seen.add(nxt)
                frontier.append(nxt)
    return frozenset(seen)


@dataclass(frozen=True)
class SagaStep:
    """Transitions applied when an inbound saga event arrives.

    With ``records_failure`` the failure reason is stored right after the
    first transition, i.e. while entering the failure status.

    An order in ``settled`` has already moved past this step, so a late
    or repeated delivery leaves it alone.
    """

    name: str
    transitions: Tuple[str, ...]
    event_type: str
    records_failure: bool = False

    @property
    def outcome(self) -> str:
        return self.transitions[-1]

    @property
    def settled(self) -> FrozenSet[str]:
        return _reachable_from(self.outcome)


INVENTORY_RESERVED_STEP = SagaStep(
    name="inventory_reserved",
    transitions=(OrderStatus.INVENTORY_RESERVED, OrderStatus.PAYMENT_PROCESSING),
    event_type=OrderEventType.ORDER_PAYMENT_PROCESSING,
)
INVENTORY_FAILED_STEP = SagaStep(
    name="inventory_failed",
    transitions=(OrderStatus.INVENTORY_FAILED, OrderStatus.CANCELLED),
    event_type=OrderEventType.ORDER_CANCELLED,
    records_failure=True,
)
PAYMENT_COMPLETED_STEP = SagaStep(
    name="payment_completed",
    transitions=(OrderStatus.PAYMENT_COMPLETED, OrderStatus.COMPLETED),
    event_type=OrderEventType.ORDER_COMPLETED,
)
PAYMENT_FAILED_STEP = SagaStep(
    name="payment_failed",
    transitions=(OrderStatus.PAYMENT_FAILED, OrderStatus.COMPENSATING),
    event_type=OrderEventType.ORDER_COMPENSATION_STARTED,
    records_failure=True,
)


class SagaOrchestrator:
    """Application service for the order saga.

    Receives the order store and the event bus via constructor injection
    (DIP); it owns neither of their lifecycles.
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        event_bus: IEventBus,
        *,
        topic: Optional[str] = None,
        max_attempts: Optional[int] = None,
    ) -> None:
        self._order_repo = order_repository
        self._event_bus = event_bus
        self._topic = topic or settings.ORDER_EVENTS_TOPIC
        self._max_attempts = max_attempts or settings.SAGA_SAVE_MAX_ATTEMPTS
        self._codec = OrderEventCodec()

    # ------------------------------------------------------------------
    # Client commands
    # ------------------------------------------------------------------

    def create_order(self, dto: CreateOrderDTO) -> OrderAggregate:
        """Create a ``PENDING`` order and start its saga.

        Raises:
            OrderValidationError: no items, blank customer, or a
                non-positive quantity or unit price.
        """
        log = logger.bind(customer_id=dto.customer_id)
        log.info("order.creation_started", item_count=len(dto.items))

        order = OrderAggregate.create(
            dto.customer_id,
            [
                OrderItem(
                    product_id=item.product_id,
                    product_name=item.product_name,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                )
                for item in dto.items
            ],
        )
        self._order_repo.save(order)

        log.info(
            "order.created",
            order_id=order.id,
            saga_id=order.saga_id,
            total_amount=str(order.total_amount),
        )
        self._publish(order, OrderEventType.ORDER_CREATED)
        return order

    def cancel_order(self, order_id: str) -> OrderAggregate:
        """Cancel an order that has not completed yet.

        Raises:
            OrderNotFound: order does not exist.
            OrderStateConflict: the order is already ``COMPLETED``.
            InvalidTransition: the current status cannot move to ``CANCELLED``.
        """

        def cancel(order: OrderAggregate) -> str:
            if order.status == OrderStatus.COMPLETED:
                raise OrderStateConflict(f"Cannot cancel completed order {order.id}.")
            order.transition_to(OrderStatus.CANCELLED)
            return OrderEventType.ORDER_CANCELLED

        log = logger.bind(order_id=order_id, command="cancel_order")
        order = self._execute(partial(self._load_order, order_id), cancel, log)
        log.info("order.cancelled")
        return order

    def update_order_status(self, order_id: str, new_status: str) -> OrderAggregate:
        """Apply a single transition requested outside of a saga event.

        Raises:
            OrderNotFound: order does not exist.
            InvalidTransition: the transition is not allowed.
        """

        def update(order: OrderAggregate) -> str:
            order.transition_to(new_status)
            return self._codec.event_type_for_status(order.status)

        log = logger.bind(order_id=order_id, new_status=new_status)
        order = self._execute(partial(self._load_order, order_id), update, log)
        log.info("order.status_updated")
        return order

    def get_order(self, order_id: str) -> OrderAggregate:
        """Retrieve a single order by ID.

        Raises:
            OrderNotFound: if the order does not exist.
        """
        return self._load_order(order_id)

    # ------------------------------------------------------------------
    # Saga events
    # ------------------------------------------------------------------

    def handle_inventory_reserved(self, saga_id: str) -> OrderAggregate:
        return self._advance(saga_id, INVENTORY_RESERVED_STEP)

    def handle_inventory_failed(self, saga_id: str, reason: Optional[str]) -> OrderAggregate:
        # Nothing was reserved downstream, so the order is cancelled outright.
        return self._advance(saga_id, INVENTORY_FAILED_STEP, reason)

    def handle_payment_completed(self, saga_id: str) -> OrderAggregate:
        return self._advance(saga_id, PAYMENT_COMPLETED_STEP)

    def handle_payment_failed(self, saga_id: str, reason: Optional[str]) -> OrderAggregate:
        # COMPENSATING tells the inventory service to release its reservation.
        return self._advance(saga_id, PAYMENT_FAILED_STEP, reason)

    def _advance(
        self, saga_id: str, step: SagaStep, reason: Optional[str] = None
    ) -> OrderAggregate:
        """Run *step* for the saga.

        Raises:
            SagaNotFound: no order carries *saga_id*.
            InvalidTransition: the order is not in a status the step can start from.
        """
        log = logger.bind(saga_id=saga_id, step=step.name)

        def apply(order: OrderAggregate) -> Optional[str]:
            if order.status in step.settled:
                log.info("saga.duplicate_event_ignored", order_id=order.id)
                return None
            first, *rest = step.transitions
            order.transition_to(first)
            if step.records_failure:
                order.mark_failed(reason or "")
            for status in rest:
                order.transition_to(status)
            return step.event_type

        order = self._execute(partial(self._load_saga, saga_id), apply, log)
        log.info("saga.step_applied", order_id=order.id, status=order.status.value)
        return order

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    def _execute(
        self,
        load: Callable[[], OrderAggregate],
        mutate: Mutation,
        log: structlog.stdlib.BoundLogger,
    ) -> OrderAggregate:
        for attempt in range(1, self._max_attempts + 1):
            order = load()
            event_type = mutate(order)
            if event_type is None:
                return order
            try:
                self._order_repo.save(order)
            except ConcurrencyConflict:
                log.warning(
                    "saga.save_conflict",
                    order_id=order.id,
                    attempt=attempt,
                    max_attempts=self._max_attempts,
                )
                if attempt == self._max_attempts:
                    raise
                continue
            self._publish(order, event_type)
            return order
        raise RuntimeError("unreachable")  # pragma: no cover

    def _load_order(self, order_id: str) -> OrderAggregate:
        order = self._order_repo.find_by_id(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    def _load_saga(self, saga_id: str) -> OrderAggregate:
        order = self._order_repo.find_by_saga_id(saga_id)
        if order is None:
            raise SagaNotFound(saga_id)
        return order

    # ------------------------------------------------------------------
    # Event emission
    # ------------------------------------------------------------------

    def _publish(self, order: OrderAggregate, event_type: str) -> None:
        event = self._codec.encode(order, event_type)
        log = logger.bind(
            order_id=order.id,
            event_type=event.event_type.value,
            event_id=event.event_id,
        )
        try:
            self._event_bus.publish(
                self._topic,
                order.id,
                self._codec.to_message(event),
                on_complete=partial(_log_publish_outcome, log),
            )
        except Exception as exc:
            # The order is already saved; a lost event is left to reconciliation.
            log.error("saga.publish_failed", error=str(exc), exc_info=True)


def _log_publish_outcome(
    log: structlog.stdlib.BoundLogger, error: Optional[BaseException]
) -> None:
    if error is None:
        log.debug("saga.event_published")
    else:
        log.error("saga.publish_failed", error=str(error))
