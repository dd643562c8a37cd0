from decimal import Decimal

import pytest
from rest_framework.test import APIClient

from modules.orders.dtos import CreateOrderDTO, CreateOrderItemDTO
from modules.orders.repositories import InMemoryOrderRepository
from modules.orders.services import SagaOrchestrator
from shared.infrastructure.bus import InMemoryEventBus, default_event_bus

ORDER_TOPIC = "order-events"


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture(autouse=True)
def _memory_event_bus(settings):
    """Keep every test off Redis unless it builds a Redis bus explicitly."""
    settings.EVENT_BUS_BACKEND = "memory"


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def api_client_with_correlation(api_client):
    """APIClient pre-configured with a known correlation ID header."""
    cid = "test-correlation-id-fixture"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid


@pytest.fixture()
def http_event_bus(_memory_event_bus):
    """The process-wide bus the API publishes to, fresh for every test."""
    default_event_bus.cache_clear()
    bus = default_event_bus()
    yield bus
    default_event_bus.cache_clear()


@pytest.fixture()
def order_repository():
    return InMemoryOrderRepository()


@pytest.fixture()
def event_bus():
    return InMemoryEventBus()


@pytest.fixture()
def orchestrator(order_repository, event_bus):
    return SagaOrchestrator(order_repository, event_bus, topic=ORDER_TOPIC)


@pytest.fixture()
def create_dto():
    return CreateOrderDTO(
        customer_id="customer-1",
        items=[
            CreateOrderItemDTO(
                product_id="sku-keyboard",
                product_name="Mechanical keyboard",
                quantity=2,
                unit_price=Decimal("10.00"),
            ),
            CreateOrderItemDTO(
                product_id="sku-mouse",
                product_name="Wireless mouse",
                quantity=1,
                unit_price=Decimal("5.50"),
            ),
        ],
    )


def event_types(bus: InMemoryEventBus, order_id: str) -> list:
    """Event types published for *order_id*, in publish order."""
    return [m["eventType"] for m in bus.messages_for_key(ORDER_TOPIC, order_id)]
