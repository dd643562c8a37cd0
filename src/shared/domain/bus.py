"""Message bus interfaces.

The saga core depends only on these protocols; concrete brokers live in
``shared.infrastructure``.  Messages are JSON-safe mappings published
under a key: messages sharing a key are delivered in publish order,
messages with different keys carry no ordering guarantee.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, Optional, Protocol

Acknowledge = Callable[[], None]
PublishCallback = Callable[[Optional[BaseException]], None]


class PublishFailure(Exception):
    """A message could not be handed to the broker."""


class IMessageHandler(Protocol):
    """Consumer of one topic.

    Must call ``acknowledge`` once the message has been fully processed.
    Raising (or returning without acknowledging) leaves the message
    pending, and the transport redelivers it later.
    """

    def handle(self, message: Mapping[str, Any], acknowledge: Acknowledge) -> None: ...


class IEventBus(Protocol):
    """Keyed publish / at-least-once subscribe."""

    def publish(
        self,
        topic: str,
        key: str,
        payload: Mapping[str, Any],
        on_complete: Optional[PublishCallback] = None,
    ) -> None:
        """Start publishing *payload*; ``on_complete`` receives the error or ``None``."""

    def subscribe(self, topic: str, handler: IMessageHandler) -> None: ...

    def ping(self) -> bool: ...

    def close(self) -> None: ...
