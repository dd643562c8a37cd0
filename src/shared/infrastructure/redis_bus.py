"""Redis Streams event bus.

Each topic is a stream.  Publishing appends ``{key, payload}`` with
``XADD``; consuming goes through a consumer group so every message is
processed by one worker of the group and stays in the pending list until
the handler acknowledges it.  Pending messages idle for longer than
``redelivery_idle_ms`` are reclaimed with ``XAUTOCLAIM`` and delivered
again (at-least-once).

Publishing runs on a single background thread: the caller never waits
for Redis, and events leave this process in the order they were
published.
"""

from __future__ import annotations

import json
import os
import socket
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from functools import partial
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import redis
import structlog

from shared.domain.bus import (
    IEventBus,
    IMessageHandler,
    PublishCallback,
    PublishFailure,
)

logger = structlog.get_logger(__name__)

StreamEntry = Tuple[str, Optional[Dict[str, str]]]


class RedisStreamEventBus(IEventBus):
    """Event bus backed by Redis Streams consumer groups."""

    def __init__(
        self,
        client: redis.Redis,
        *,
        group: str,
        consumer: Optional[str] = None,
        block_ms: int = 5000,
        redelivery_idle_ms: int = 30000,
        batch_size: int = 10,
    ) -> None:
        self._client = client
        self._group = group
        self._consumer = consumer or f"{socket.gethostname()}-{os.getpid()}"
        self._block_ms = block_ms
        self._redelivery_idle_ms = redelivery_idle_ms
        self._batch_size = batch_size
        self._handlers: Dict[str, IMessageHandler] = {}
        # XAUTOCLAIM resume point per stream; "0-0" restarts the scan.
        self._reclaim_cursors: Dict[str, str] = {}
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="event-bus-publish"
        )
        self._stopping = threading.Event()

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> RedisStreamEventBus:
        return cls(redis.Redis.from_url(url, decode_responses=True), **kwargs)

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
        body = json.dumps(payload, default=str)
        future = self._executor.submit(
            self._client.xadd, topic, {"key": key, "payload": body}
        )
        future.add_done_callback(partial(self._on_published, topic, key, on_complete))

    def _on_published(
        self,
        topic: str,
        key: str,
        on_complete: Optional[PublishCallback],
        future: Future,
    ) -> None:
        cause = future.exception()
        error: Optional[PublishFailure] = None
        if cause is None:
            logger.debug(
                "event_bus.published", topic=topic, key=key, message_id=future.result()
            )
        else:
            error = PublishFailure(f"XADD to {topic} failed: {cause}")
            error.__cause__ = cause
            logger.error(
                "event_bus.publish_failed", topic=topic, key=key, error=str(cause)
            )
        if on_complete is not None:
            on_complete(error)

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def subscribe(self, topic: str, handler: IMessageHandler) -> None:
        try:
            self._client.xgroup_create(topic, self._group, id="0", mkstream=True)
        except redis.exceptions.ResponseError as exc:
            if "BUSYGROUP" not in str(exc):
                raise
        self._handlers[topic] = handler
        logger.info("event_bus.subscribed", topic=topic, group=self._group)

    def poll(self) -> int:
        """Run one consume round.  Returns the number of acknowledged messages."""
        if not self._handlers:
            return 0

        acknowledged = 0
        for topic in list(self._handlers):
            for message_id, fields in self._reclaim(topic):
                acknowledged += self._process(topic, message_id, fields)

        response = self._client.xreadgroup(
            self._group,
            self._consumer,
            {topic: ">" for topic in self._handlers},
            count=self._batch_size,
            block=self._block_ms,
        )
        for topic, entries in response or []:
            for message_id, fields in entries:
                acknowledged += self._process(topic, message_id, fields)
        return acknowledged

    def run_forever(self) -> None:
        self._stopping.clear()
        logger.info("event_bus.consumer_started", consumer=self._consumer)
        while not self._stopping.is_set():
            self.poll()
        logger.info("event_bus.consumer_stopped", consumer=self._consumer)

    def stop(self) -> None:
        self._stopping.set()

    def _reclaim(self, topic: str) -> Iterable[StreamEntry]:
        result: List[Any] = self._client.xautoclaim(
            topic,
            self._group,
            self._consumer,
            min_idle_time=self._redelivery_idle_ms,
            start_id=self._reclaim_cursors.get(topic, "0-0"),
            count=self._batch_size,
        )
        if result:
            self._reclaim_cursors[topic] = result[0]
        entries = result[1] if len(result) > 1 else []
        if entries:
            logger.info("event_bus.redelivering", topic=topic, count=len(entries))
        return entries

    def _process(
        self, topic: str, message_id: str, fields: Optional[Dict[str, str]]
    ) -> int:
        log = logger.bind(topic=topic, message_id=message_id)
        if not fields or "payload" not in fields:
            # Trimmed or foreign entry: nothing to retry.
            log.warning("event_bus.malformed_message_dropped")
            self._client.xack(topic, self._group, message_id)
            return 0

        try:
            payload = json.loads(fields["payload"])
        except json.JSONDecodeError:
            log.warning("event_bus.malformed_message_dropped", key=fields.get("key"))
            self._client.xack(topic, self._group, message_id)
            return 0

        if not isinstance(payload, dict):
            log.warning("event_bus.malformed_message_dropped", key=fields.get("key"))
            self._client.xack(topic, self._group, message_id)
            return 0

        done = threading.Event()
        try:
            self._handlers[topic].handle(payload, done.set)
        except Exception as exc:
            log.warning(
                "event_bus.delivery_failed",
                key=fields.get("key"),
                error=str(exc),
            )
            return 0

        if not done.is_set():
            return 0
        self._client.xack(topic, self._group, message_id)
        return 1

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        return bool(self._client.ping())

    def close(self) -> None:
        self.stop()
        self._executor.shutdown(wait=True)
        self._client.close()
