"""In-memory event bus implementation and the bus factory."""

from __future__ import annotations

import atexit
import threading
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, List, Mapping, Optional

import structlog
from django.conf import settings

from shared.domain.bus import IEventBus, IMessageHandler, PublishCallback

logger = structlog.get_logger(__name__)


@dataclass
class BusMessage:
    topic: str
    key: str
    payload: Mapping[str, Any]
    attempts: int = 0
    acknowledged: bool = field(default=False, compare=False)


class InMemoryEventBus(IEventBus):
    """Simple in-process bus.

    Published messages are kept in emission order so tests (and local runs)
    can inspect them per key.  Inbound delivery via ``deliver`` mimics an
    at-least-once broker: a message the handler does not acknowledge stays
    pending until ``redeliver_pending`` is called.
    """

    def __init__(self) -> None:
        self._handlers: Dict[str, IMessageHandler] = {}
        self._published: List[BusMessage] = []
        self._pending: List[BusMessage] = []
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def publish(
        self,
        topic: str,
        key: str,
        payload: Mapping[str, Any],
        on_complete: Optional[PublishCallback] = None,
    ) -> None:
        with self._lock:
            self._published.append(BusMessage(topic=topic, key=key, payload=payload))
        if on_complete is not None:
            on_complete(None)

    @property
    def published(self) -> List[BusMessage]:
        with self._lock:
            return list(self._published)

    def messages_for_key(self, topic: str, key: str) -> List[Mapping[str, Any]]:
        """Payloads published under *key*, in the order a single consumer would see them."""
        return [m.payload for m in self.published if m.topic == topic and m.key == key]

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def subscribe(self, topic: str, handler: IMessageHandler) -> None:
        self._handlers[topic] = handler

    def deliver(self, topic: str, key: str, payload: Mapping[str, Any]) -> bool:
        """Hand *payload* to the topic's handler.  Returns ``True`` if acknowledged."""
        return self._dispatch(BusMessage(topic=topic, key=key, payload=payload))

    def redeliver_pending(self) -> int:
        """Retry every unacknowledged message once.  Returns how many got acknowledged."""
        with self._lock:
            pending, self._pending = self._pending, []
        return sum(1 for message in pending if self._dispatch(message))

    @property
    def pending(self) -> List[BusMessage]:
        with self._lock:
            return list(self._pending)

    def _dispatch(self, message: BusMessage) -> bool:
        handler = self._handlers.get(message.topic)
        if handler is None:
            raise LookupError(f"No handler subscribed to topic {message.topic!r}")

        message.attempts += 1

        def acknowledge() -> None:
            message.acknowledged = True

        try:
            handler.handle(message.payload, acknowledge)
        except Exception as exc:
            logger.warning(
                "event_bus.delivery_failed",
                topic=message.topic,
                key=message.key,
                attempts=message.attempts,
                error=str(exc),
            )

        if not message.acknowledged:
            with self._lock:
                self._pending.append(message)
        return message.acknowledged

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        self._handlers.clear()


def build_event_bus(backend: Optional[str] = None) -> IEventBus:
    """Create the bus configured by ``EVENT_BUS_BACKEND`` (``memory`` or ``redis``)."""
    backend = backend or settings.EVENT_BUS_BACKEND
    if backend == "memory":
        return InMemoryEventBus()
    if backend == "redis":
        from shared.infrastructure.redis_bus import RedisStreamEventBus

        return RedisStreamEventBus.from_url(
            settings.REDIS_URL,
            group=settings.EVENT_BUS_CONSUMER_GROUP,
            block_ms=settings.EVENT_BUS_BLOCK_MS,
            redelivery_idle_ms=settings.EVENT_BUS_REDELIVERY_IDLE_MS,
        )
    raise ValueError(f"Unknown event bus backend: {backend!r}")


@lru_cache(maxsize=1)
def default_event_bus() -> IEventBus:
    """Bus shared by the HTTP process."""
    bus = build_event_bus()
    atexit.register(bus.close)
    return bus
