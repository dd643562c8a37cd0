"""Order API views.

Exposes the ``SagaOrchestrator`` client commands via HTTP using a DRF
ViewSet.  Domain exceptions are caught and translated into HTTP status
codes; anything else propagates to DRF and becomes a 500.
"""

from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.viewsets import ViewSet

from modules.orders.dtos import CreateOrderDTO, CreateOrderItemDTO, OrderOutputDTO
from modules.orders.exceptions import (
    ConcurrencyConflict,
    InvalidTransition,
    OrderNotFound,
    OrderStateConflict,
    OrderValidationError,
)
from modules.orders.repositories import OrderDjangoRepository
from modules.orders.serializers import (
    CreateOrderSerializer,
    OrderSerializer,
    UpdateOrderStatusSerializer,
)
from modules.orders.services import SagaOrchestrator
from shared.infrastructure.bus import default_event_bus

CONFLICT_ERRORS = (InvalidTransition, OrderStateConflict, ConcurrencyConflict)


def _render(order) -> dict:
    return OrderSerializer(OrderOutputDTO.from_entity(order)).data


def _not_found() -> Response:
    return Response({"detail": "Order not found."}, status=status.HTTP_404_NOT_FOUND)


class OrderViewSet(ViewSet):
    """ViewSet for order commands.

    Uses ``SagaOrchestrator`` with the Django store and the process-wide
    event bus (DIP).  There is no list endpoint: queries belong to a
    separate read service.
    """

    permission_classes = [AllowAny]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._orchestrator = SagaOrchestrator(
            order_repository=OrderDjangoRepository(),
            event_bus=default_event_bus(),
        )

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, request: Request) -> Response:
        """POST /api/v1/orders/"""
        create_serializer = CreateOrderSerializer(data=request.data)
        create_serializer.is_valid(raise_exception=True)

        data = create_serializer.validated_data
        dto = CreateOrderDTO(
            customer_id=data["customer_id"],
            items=[CreateOrderItemDTO(**item) for item in data["items"]],
        )

        try:
            order = self._orchestrator.create_order(dto)
        except OrderValidationError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        return Response(_render(order), status=status.HTTP_201_CREATED)

    # ------------------------------------------------------------------
    # Retrieve
    # ------------------------------------------------------------------

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/"""
        try:
            order = self._orchestrator.get_order(pk)
        except OrderNotFound:
            return _not_found()
        return Response(_render(order))

    # ------------------------------------------------------------------
    # Status Update
    # ------------------------------------------------------------------

    def partial_update(self, request: Request, pk: str | None = None) -> Response:
        """PATCH /api/v1/orders/{pk}/

        Applies a single state machine transition.  Cancellations are
        **not** allowed via this endpoint; use ``POST /orders/{id}/cancel/``.
        """
        serializer = UpdateOrderStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        new_status = serializer.validated_data["status"]

        if new_status == "CANCELLED":
            return Response(
                {"detail": "Use the /cancel/ endpoint for cancellations."},
                status=status.HTTP_400_BAD_REQUEST,
            )

        try:
            order = self._orchestrator.update_order_status(pk, new_status)
        except OrderNotFound:
            return _not_found()
        except CONFLICT_ERRORS as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)

        return Response(_render(order))

    # ------------------------------------------------------------------
    # Cancel (dedicated action)
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"])
    def cancel(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/cancel/"""
        try:
            order = self._orchestrator.cancel_order(pk)
        except OrderNotFound:
            return _not_found()
        except CONFLICT_ERRORS as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)

        return Response(_render(order))
