"""Integration tests for the order command endpoints.

Covers:
- POST /api/v1/orders/ (201, 400 on shape and on domain validation).
- GET /api/v1/orders/{id}/ (200, 404).
- PATCH /api/v1/orders/{id}/ status transitions (200, 400, 404, 409).
- POST /api/v1/orders/{id}/cancel/ (200, 404, 409).
- Every successful command publishes one event on the order topic.
"""

from __future__ import annotations

import pytest

from modules.orders.models import OrderRecord
from tests.conftest import event_types

pytestmark = pytest.mark.integration

ORDERS_URL = "/api/v1/orders/"
SAGA_TO_COMPLETION = (
    "INVENTORY_RESERVED",
    "PAYMENT_PROCESSING",
    "PAYMENT_COMPLETED",
    "COMPLETED",
)


def order_payload(**overrides):
    payload = {
        "customer_id": "customer-42",
        "items": [
            {
                "product_id": "sku-1",
                "product_name": "Widget",
                "quantity": 2,
                "unit_price": "10.00",
            },
            {
                "product_id": "sku-2",
                "product_name": "Gadget",
                "quantity": 1,
                "unit_price": "5.50",
            },
        ],
    }
    payload.update(overrides)
    return payload


@pytest.fixture()
def created_order(api_client, http_event_bus):
    response = api_client.post(ORDERS_URL, order_payload(), format="json")
    assert response.status_code == 201
    return response.json()


class TestCreate:
    def test_create_order(self, api_client, http_event_bus):
        response = api_client.post(ORDERS_URL, order_payload(), format="json")

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "PENDING"
        assert data["customer_id"] == "customer-42"
        assert data["total_amount"] == "25.50"
        assert data["version"] == 1
        assert data["failure_reason"] is None
        assert [i["total_price"] for i in data["items"]] == ["20.00", "5.50"]
        assert OrderRecord.objects.filter(id=data["id"]).exists()
        assert event_types(http_event_bus, data["id"]) == ["ORDER_CREATED"]

    def test_missing_customer(self, api_client, http_event_bus):
        payload = order_payload()
        del payload["customer_id"]

        response = api_client.post(ORDERS_URL, payload, format="json")

        assert response.status_code == 400
        assert "customer_id" in response.json()

    def test_empty_items(self, api_client, http_event_bus):
        response = api_client.post(ORDERS_URL, order_payload(items=[]), format="json")

        assert response.status_code == 400
        assert "at least one item" in response.json()["detail"]
        assert OrderRecord.objects.count() == 0
        assert http_event_bus.published == []

    @pytest.mark.parametrize(
        ("field", "value"), [("quantity", 0), ("unit_price", "-1.00")]
    )
    def test_non_positive_item_values(self, api_client, http_event_bus, field, value):
        payload = order_payload()
        payload["items"][0][field] = value

        response = api_client.post(ORDERS_URL, payload, format="json")

        assert response.status_code == 400
        assert OrderRecord.objects.count() == 0


class TestRetrieve:
    def test_get_order(self, api_client, created_order):
        response = api_client.get(f"{ORDERS_URL}{created_order['id']}/")

        assert response.status_code == 200
        assert response.json()["saga_id"] == created_order["saga_id"]

    def test_unknown_order(self, api_client, http_event_bus):
        response = api_client.get(f"{ORDERS_URL}does-not-exist/")
        assert response.status_code == 404


class TestUpdateStatus:
    def test_valid_transition(self, api_client, created_order, http_event_bus):
        response = api_client.patch(
            f"{ORDERS_URL}{created_order['id']}/",
            {"status": "INVENTORY_RESERVED"},
            format="json",
        )

        assert response.status_code == 200
        assert response.json()["status"] == "INVENTORY_RESERVED"
        assert response.json()["version"] == 2
        assert event_types(http_event_bus, created_order["id"])[-1] == (
            "ORDER_INVENTORY_RESERVED"
        )

    def test_invalid_transition_is_a_conflict(self, api_client, created_order):
        response = api_client.patch(
            f"{ORDERS_URL}{created_order['id']}/", {"status": "COMPLETED"}, format="json"
        )

        assert response.status_code == 409
        assert "PENDING to COMPLETED" in response.json()["detail"]

    def test_unknown_status_value(self, api_client, created_order):
        response = api_client.patch(
            f"{ORDERS_URL}{created_order['id']}/", {"status": "SHIPPED"}, format="json"
        )
        assert response.status_code == 400

    def test_cancel_not_allowed_here(self, api_client, created_order):
        response = api_client.patch(
            f"{ORDERS_URL}{created_order['id']}/", {"status": "CANCELLED"}, format="json"
        )
        assert response.status_code == 400

    def test_unknown_order(self, api_client, http_event_bus):
        response = api_client.patch(
            f"{ORDERS_URL}missing/", {"status": "INVENTORY_RESERVED"}, format="json"
        )
        assert response.status_code == 404


class TestCancel:
    def test_cancel_pending_order(self, api_client, created_order, http_event_bus):
        response = api_client.post(f"{ORDERS_URL}{created_order['id']}/cancel/")

        assert response.status_code == 200
        assert response.json()["status"] == "CANCELLED"
        assert event_types(http_event_bus, created_order["id"]) == [
            "ORDER_CREATED",
            "ORDER_CANCELLED",
        ]

    def test_cancel_completed_order(self, api_client, created_order):
        url = f"{ORDERS_URL}{created_order['id']}/"
        for status in SAGA_TO_COMPLETION:
            response = api_client.patch(url, {"status": status}, format="json")
            assert response.status_code == 200

        response = api_client.post(f"{url}cancel/")

        assert response.status_code == 409
        assert OrderRecord.objects.get(id=created_order["id"]).status == "COMPLETED"

    def test_cancel_twice(self, api_client, created_order):
        url = f"{ORDERS_URL}{created_order['id']}/cancel/"
        assert api_client.post(url).status_code == 200
        assert api_client.post(url).status_code == 409

    def test_unknown_order(self, api_client, http_event_bus):
        response = api_client.post(f"{ORDERS_URL}missing/cancel/")
        assert response.status_code == 404
