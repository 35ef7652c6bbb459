import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from backend.channels import DRIVER_LOCATION, DRIVER_STATUS_CHANGED, InMemoryChannel, RedisChannel


async def test_in_memory_emit_reaches_subscribers():
    channel = InMemoryChannel()
    received = []
    await channel.subscribe(DRIVER_LOCATION, received.append)

    await channel.emit(DRIVER_LOCATION, {"driverId": "d1"})
    await channel.emit(DRIVER_STATUS_CHANGED, {"driverId": "d1"})

    assert received == [{"driverId": "d1"}]


async def test_failing_handler_does_not_block_others():
    channel = InMemoryChannel()
    received = []

    def broken(payload):
        raise RuntimeError("handler bug")

    await channel.subscribe(DRIVER_LOCATION, broken)
    await channel.subscribe(DRIVER_LOCATION, received.append)

    await channel.emit(DRIVER_LOCATION, {"driverId": "d1"})

    assert received == [{"driverId": "d1"}]


async def test_unsubscribe_and_close():
    channel = InMemoryChannel()
    received = []
    await channel.subscribe(DRIVER_LOCATION, received.append)
    await channel.unsubscribe(DRIVER_LOCATION, received.append)

    await channel.emit(DRIVER_LOCATION, {"driverId": "d1"})
    assert received == []
    assert channel.subscriber_count() == 0

    await channel.close()
    with pytest.raises(ConnectionError):
        await channel.emit(DRIVER_LOCATION, {})


class FakePubSub:
    """Minimal redis.asyncio PubSub: messages are fed through a queue."""

    def __init__(self):
        self.channels = set()
        self.queue = asyncio.Queue()
        self.aclose = AsyncMock()

    async def subscribe(self, *channels):
        self.channels.update(channels)

    async def unsubscribe(self, *channels):
        self.channels.difference_update(channels)

    async def listen(self):
        while True:
            yield await self.queue.get()


@pytest.fixture
async def redis_client():
    client = MagicMock()
    client.pubsub.return_value = FakePubSub()
    client.publish = AsyncMock()
    client.aclose = AsyncMock()
    return client


async def test_redis_emit_publishes_json_on_prefixed_channel(redis_client):
    channel = RedisChannel(prefix="delivery", client=redis_client)

    await channel.emit(DRIVER_LOCATION, {"driverId": "d1"})

    redis_client.publish.assert_awaited_once_with("delivery:driver-location", json.dumps({"driverId": "d1"}))


async def test_redis_messages_reach_handlers(redis_client, eventually):
    channel = RedisChannel(prefix="delivery", client=redis_client)
    pubsub = redis_client.pubsub.return_value
    received = []

    await channel.subscribe(DRIVER_LOCATION, received.append)
    assert pubsub.channels == {"delivery:driver-location"}

    await pubsub.queue.put({"type": "subscribe", "channel": "delivery:driver-location", "data": 1})
    await pubsub.queue.put({"type": "message", "channel": "delivery:driver-location", "data": "not json"})
    await pubsub.queue.put({"type": "message", "channel": "delivery:driver-location", "data": '{"driverId": "d1"}'})
    await eventually(lambda: received)

    assert received == [{"driverId": "d1"}]

    await channel.unsubscribe(DRIVER_LOCATION, received.append)
    assert pubsub.channels == set()

    await channel.close()
    pubsub.aclose.assert_awaited_once()
    redis_client.aclose.assert_awaited_once()


class DroppingPubSub(FakePubSub):
    """The first listen() loses the connection, later ones behave."""

    def __init__(self):
        super().__init__()
        self.failures = 1

    async def listen(self):
        if self.failures:
            self.failures -= 1
            raise ConnectionError("connection reset by peer")
        async for message in super().listen():
            yield message


async def test_lost_connection_ends_listener_and_subscribe_restarts_it(redis_client, eventually):
    pubsub = DroppingPubSub()
    redis_client.pubsub.return_value = pubsub
    channel = RedisChannel(prefix="delivery", client=redis_client)
    received = []

    await channel.subscribe(DRIVER_LOCATION, received.append)
    broken = channel._listener
    await broken

    assert broken.exception() is None

    await channel.subscribe(DRIVER_STATUS_CHANGED, received.append)
    assert channel._listener is not broken
    assert not channel._listener.done()

    await pubsub.queue.put({"type": "message", "channel": "delivery:driver-location", "data": '{"driverId": "d1"}'})
    await eventually(lambda: received)
    assert received == [{"driverId": "d1"}]

    await channel.close()
