"""Unit tests for ``RedisStreamEventBus`` with a mocked Redis client."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest
import redis

from shared.domain.bus import PublishFailure
from shared.infrastructure.redis_bus import RedisStreamEventBus

pytestmark = pytest.mark.unit

GROUP = "order-service"
TOPIC = "inventory-events"


@pytest.fixture()
def client():
    client = MagicMock()
    client.xautoclaim.return_value = ["0-0", [], []]
    client.xreadgroup.return_value = []
    client.xadd.return_value = "1700000000000-0"
    return client


@pytest.fixture()
def bus(client):
    bus = RedisStreamEventBus(client, group=GROUP, consumer="worker-1", block_ms=10)
    yield bus
    bus.close()


def entry(message_id: str, payload: dict, key: str = "order-1"):
    return message_id, {"key": key, "payload": json.dumps(payload)}


class TestPublish:
    def test_xadd_with_key_and_json_payload(self, client):
        bus = RedisStreamEventBus(client, group=GROUP)
        on_complete = MagicMock()

        bus.publish("order-events", "order-1", {"eventType": "ORDER_CREATED"}, on_complete)
        bus.close()

        client.xadd.assert_called_once_with(
            "order-events",
            {"key": "order-1", "payload": '{"eventType": "ORDER_CREATED"}'},
        )
        on_complete.assert_called_once_with(None)

    def test_failure_is_reported_as_publish_failure(self, client):
        client.xadd.side_effect = redis.exceptions.ConnectionError("down")
        bus = RedisStreamEventBus(client, group=GROUP)
        on_complete = MagicMock()

        bus.publish("order-events", "order-1", {}, on_complete)
        bus.close()

        [error] = on_complete.call_args.args
        assert isinstance(error, PublishFailure)
        assert isinstance(error.__cause__, redis.exceptions.ConnectionError)

    def test_publish_order_is_preserved(self, client):
        bus = RedisStreamEventBus(client, group=GROUP)
        for n in range(5):
            bus.publish("order-events", "order-1", {"n": n})
        bus.close()

        payloads = [json.loads(c.args[1]["payload"]) for c in client.xadd.call_args_list]
        assert [p["n"] for p in payloads] == [0, 1, 2, 3, 4]


class TestSubscribe:
    def test_creates_consumer_group(self, bus, client):
        bus.subscribe(TOPIC, MagicMock())
        client.xgroup_create.assert_called_once_with(TOPIC, GROUP, id="0", mkstream=True)

    def test_existing_group_is_fine(self, bus, client):
        client.xgroup_create.side_effect = redis.exceptions.ResponseError(
            "BUSYGROUP Consumer Group name already exists"
        )
        bus.subscribe(TOPIC, MagicMock())

    def test_other_errors_propagate(self, bus, client):
        client.xgroup_create.side_effect = redis.exceptions.ResponseError("WRONGTYPE")
        with pytest.raises(redis.exceptions.ResponseError):
            bus.subscribe(TOPIC, MagicMock())


class TestPoll:
    def test_no_subscriptions(self, bus, client):
        assert bus.poll() == 0
        client.xreadgroup.assert_not_called()

    def test_acks_after_handler_acknowledges(self, bus, client):
        handler = MagicMock()
        handler.handle.side_effect = lambda message, acknowledge: acknowledge()
        bus.subscribe(TOPIC, handler)
        client.xreadgroup.return_value = [[TOPIC, [entry("1-0", {"sagaId": "s-1"})]]]

        assert bus.poll() == 1

        assert handler.handle.call_args.args[0] == {"sagaId": "s-1"}
        client.xack.assert_called_once_with(TOPIC, GROUP, "1-0")
        client.xreadgroup.assert_called_once_with(
            GROUP, "worker-1", {TOPIC: ">"}, count=10, block=10
        )

    def test_no_ack_when_handler_fails(self, bus, client):
        handler = MagicMock()
        handler.handle.side_effect = RuntimeError("boom")
        bus.subscribe(TOPIC, handler)
        client.xreadgroup.return_value = [[TOPIC, [entry("1-0", {"sagaId": "s-1"})]]]

        assert bus.poll() == 0
        client.xack.assert_not_called()

    def test_no_ack_when_handler_returns_without_ack(self, bus, client):
        bus.subscribe(TOPIC, MagicMock())
        client.xreadgroup.return_value = [[TOPIC, [entry("1-0", {})]]]

        assert bus.poll() == 0
        client.xack.assert_not_called()

    def test_reclaimed_messages_are_redelivered(self, bus, client):
        handler = MagicMock()
        handler.handle.side_effect = lambda message, acknowledge: acknowledge()
        bus.subscribe(TOPIC, handler)
        client.xautoclaim.return_value = ["0-0", [entry("0-5", {"n": 1})], []]

        assert bus.poll() == 1
        client.xack.assert_called_once_with(TOPIC, GROUP, "0-5")

    def test_reclaim_resumes_from_returned_cursor(self, bus, client):
        bus.subscribe(TOPIC, MagicMock())
        client.xautoclaim.side_effect = [["5-0", [], []], ["0-0", [], []], ["0-0", [], []]]

        bus.poll()
        bus.poll()
        bus.poll()

        start_ids = [call.kwargs["start_id"] for call in client.xautoclaim.call_args_list]
        assert start_ids == ["0-0", "5-0", "0-0"]

    @pytest.mark.parametrize(
        "fields",
        [
            None,
            {"key": "order-1"},
            {"key": "order-1", "payload": "{not json"},
            {"key": "order-1", "payload": "null"},
            {"key": "order-1", "payload": "[1, 2]"},
        ],
    )
    def test_malformed_entries_are_dropped(self, bus, client, fields):
        handler = MagicMock()
        bus.subscribe(TOPIC, handler)
        client.xreadgroup.return_value = [[TOPIC, [("1-0", fields)]]]

        assert bus.poll() == 0
        handler.handle.assert_not_called()
        client.xack.assert_called_once_with(TOPIC, GROUP, "1-0")


class TestLifecycle:
    def test_run_forever_until_stopped(self, bus, client):
        bus.subscribe(TOPIC, MagicMock())
        client.xreadgroup.side_effect = lambda *args, **kwargs: bus.stop() or []

        bus.run_forever()

        client.xreadgroup.assert_called_once()

    def test_ping(self, bus, client):
        client.ping.return_value = True
        assert bus.ping() is True

    def test_close_closes_client(self, client):
        RedisStreamEventBus(client, group=GROUP).close()
        client.close.assert_called_once_with()
