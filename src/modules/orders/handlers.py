"""Inbound saga event handlers.

One handler per upstream service.  Each parses the message, routes its
``eventType`` to the matching orchestrator call and acknowledges only
after that call returned.  An exception propagates without an ack so the
bus redelivers the message.  Unknown event types and payloads that do
not parse are logged and acknowledged.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Mapping, Type

import structlog
from pydantic import BaseModel, ValidationError

from modules.orders.constants import InventoryEventType, PaymentEventType
from modules.orders.dtos import InventoryEventDTO, PaymentEventDTO
from modules.orders.services import SagaOrchestrator
from shared.domain.bus import Acknowledge

logger = structlog.get_logger(__name__)

Route = Callable[[SagaOrchestrator, Any], None]


def _observe(orchestrator: SagaOrchestrator, event: Any) -> None:
    # Compensation confirmations only close the loop downstream.
    logger.info(
        "saga.compensation_confirmed",
        saga_id=event.saga_id,
        order_id=event.order_id,
        event_type=event.event_type,
    )


INVENTORY_ROUTES: Dict[str, Route] = {
    InventoryEventType.INVENTORY_RESERVED: lambda saga, event: saga.handle_inventory_reserved(
        event.saga_id
    ),
    InventoryEventType.INVENTORY_RESERVATION_FAILED: lambda saga, event: saga.handle_inventory_failed(
        event.saga_id, event.reason
    ),
    InventoryEventType.INVENTORY_RELEASED: _observe,
}

PAYMENT_ROUTES: Dict[str, Route] = {
    PaymentEventType.PAYMENT_COMPLETED: lambda saga, event: saga.handle_payment_completed(
        event.saga_id
    ),
    PaymentEventType.PAYMENT_FAILED: lambda saga, event: saga.handle_payment_failed(
        event.saga_id, event.reason
    ),
    PaymentEventType.PAYMENT_REFUNDED: _observe,
}


def _check_routes(routes: Mapping[str, Route], event_types: Type) -> None:
    missing = set(event_types) - set(routes)
    if missing:
        raise RuntimeError(
            f"No route for {event_types.__name__} values: {sorted(missing)}"
        )


_check_routes(INVENTORY_ROUTES, InventoryEventType)
_check_routes(PAYMENT_ROUTES, PaymentEventType)


class SagaEventHandler:
    """Base handler: parse, route, acknowledge."""

    source: str = ""
    dto_class: Type[BaseModel]
    routes: Mapping[str, Route] = {}

    def __init__(self, orchestrator: SagaOrchestrator) -> None:
        self._orchestrator = orchestrator

    def handle(self, message: Mapping[str, Any], acknowledge: Acknowledge) -> None:
        try:
            event = self.dto_class.model_validate(message)
        except ValidationError as exc:
            # Redelivery cannot fix a malformed payload.
            logger.error(
                "saga.malformed_event_dropped",
                source=self.source,
                error_count=exc.error_count(),
                event_id=(
                    message.get("eventId") if isinstance(message, Mapping) else None
                ),
            )
            acknowledge()
            return

        log = logger.bind(
            source=self.source,
            event_id=event.event_id,
            saga_id=event.saga_id,
            event_type=event.event_type,
        )

        route = self.routes.get(event.event_type)
        if route is None:
            log.warning("saga.unknown_event_type")
            acknowledge()
            return

        log.info("saga.event_received")
        try:
            route(self._orchestrator, event)
        except Exception as exc:
            log.error(
                "saga.event_failed", error=str(exc), error_type=type(exc).__name__
            )
            raise
        acknowledge()
        log.info("saga.event_processed")


class InventoryEventHandler(SagaEventHandler):
    source = "inventory"
    dto_class = InventoryEventDTO
    routes = INVENTORY_ROUTES


class PaymentEventHandler(SagaEventHandler):
    source = "payment"
    dto_class = PaymentEventDTO
    routes = PAYMENT_ROUTES
