"""Order saga exceptions.

Raised by the aggregate and the orchestrator when business rules are
violated.  The API layer (Views) translates them into HTTP responses;
the inbound event handlers let them propagate so the message is not
acknowledged and gets redelivered.
"""

from __future__ import annotations

from shared.domain.bus import PublishFailure


class OrderValidationError(Exception):
    """A create request is malformed (no items, non-positive quantity or price)."""


class OrderNotFound(Exception):
    """No order exists with the given order id."""

    def __init__(self, order_id: str) -> None:
        super().__init__(f"Order not found: {order_id}")
        self.order_id = order_id


class SagaNotFound(Exception):
    """No order exists with the given saga id.

    Always an upstream bug or ordering issue: an inbound event references
    a saga this service never started.
    """

    def __init__(self, saga_id: str) -> None:
        super().__init__(f"Saga not found: {saga_id}")
        self.saga_id = saga_id


class InvalidTransition(Exception):
    """The state machine rejected a status change."""

    def __init__(self, from_status: str, to_status: str) -> None:
        super().__init__(f"Invalid transition from {from_status} to {to_status}")
        self.from_status = from_status
        self.to_status = to_status


class OrderStateConflict(Exception):
    """The order's current state forbids the command (e.g. cancelling a completed order)."""


class ConcurrencyConflict(Exception):
    """The order was modified by someone else since it was loaded."""

    def __init__(self, order_id: str, expected_version: int) -> None:
        super().__init__(
            f"Order {order_id} was modified concurrently "
            f"(expected version {expected_version})"
        )
        self.order_id = order_id
        self.expected_version = expected_version


__all__ = [
    "ConcurrencyConflict",
    "InvalidTransition",
    "OrderNotFound",
    "OrderStateConflict",
    "OrderValidationError",
    "PublishFailure",
    "SagaNotFound",
]
