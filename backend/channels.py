"""
Purpose: Push channel (real-time events) between drivers, customers and the backend.
What it does:
Defines the small publish/subscribe surface the tracking flow needs and
two implementations:

- InMemoryChannel: local loopback, every emit reaches this process' subscribers
- RedisChannel: redis pub/sub, one redis channel per event name

Events used by the tracking flow:
- driver-location / cache-driver-location  (driver -> customers)
- driver-locations                          (backend -> customers, full list)
- driver-status-changed                     (backend -> customers)
- get-driver-locations                      (customer -> backend)

Payloads are plain JSON-able dicts (or lists for driver-locations).
Handlers are synchronous and must not block. A failing handler is logged and
does not stop delivery to the others.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Dict, List, Optional, Protocol

import redis.asyncio as redis

from backend import settings

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]

DRIVER_LOCATION = "driver-location"
CACHE_DRIVER_LOCATION = "cache-driver-location"
DRIVER_LOCATIONS = "driver-locations"
DRIVER_STATUS_CHANGED = "driver-status-changed"
GET_DRIVER_LOCATIONS = "get-driver-locations"


class PushChannel(Protocol):
    async def emit(self, event: str, payload: Any) -> None:
        ...

    async def subscribe(self, event: str, handler: Handler) -> None:
        ...

    async def unsubscribe(self, event: str, handler: Handler) -> None:
        ...

    async def close(self) -> None:
        ...


def _dispatch(event: str, handlers: List[Handler], payload: Any) -> None:
    # copy: handlers may unsubscribe themselves
    for handler in list(handlers):
        try:
            handler(payload)
        except Exception:
            logger.exception("Handler for %s failed", event)


class InMemoryChannel:
    """
    In-process loopback channel. Emit delivers to local subscribers on the
    next loop iteration, like a real network hop would.
    """

    def __init__(self):
        self.handlers: Dict[str, List[Handler]] = {}
        self.closed = False

    async def emit(self, event: str, payload: Any) -> None:
        if self.closed:
            raise ConnectionError("channel is closed")
        await asyncio.sleep(0)
        _dispatch(event, self.handlers.get(event, []), payload)

    async def subscribe(self, event: str, handler: Handler) -> None:
        self.handlers.setdefault(event, []).append(handler)

    async def unsubscribe(self, event: str, handler: Handler) -> None:
        if handler in self.handlers.get(event, []):
            self.handlers[event].remove(handler)
            if not self.handlers[event]:
                del self.handlers[event]

    def subscriber_count(self, event: Optional[str] = None) -> int:
        if event is not None:
            return len(self.handlers.get(event, []))
        return sum(len(handlers) for handlers in self.handlers.values())

    async def close(self) -> None:
        self.handlers.clear()
        self.closed = True


class RedisChannel:
    """
    Redis pub/sub channel. Event `driver-location` maps to the redis channel
    `{prefix}:driver-location`, payloads travel as JSON.

    One background task reads the pubsub connection and dispatches to the
    local handlers. close() stops it and releases both connections.
    """

    def __init__(self, url: Optional[str] = None, prefix: Optional[str] = None, client=None):
        self.url = url or settings.REDIS_URL
        self.prefix = prefix or settings.CHANNEL_PREFIX
        self.redis_client = client or redis.from_url(self.url, decode_responses=True)
        self.pubsub = self.redis_client.pubsub()
        self.handlers: Dict[str, List[Handler]] = {}
        self._listener: Optional[asyncio.Task] = None

    def _channel(self, event: str) -> str:
        return f"{self.prefix}:{event}"

    def _event(self, channel: str) -> str:
        return channel[len(self.prefix) + 1:]

    async def emit(self, event: str, payload: Any) -> None:
        await self.redis_client.publish(self._channel(event), json.dumps(payload))

    async def subscribe(self, event: str, handler: Handler) -> None:
        first = event not in self.handlers
        self.handlers.setdefault(event, []).append(handler)
        if first:
            await self.pubsub.subscribe(self._channel(event))
        if self._listener is None or self._listener.done():
            self._listener = asyncio.ensure_future(self._listen())

    async def unsubscribe(self, event: str, handler: Handler) -> None:
        handlers = self.handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)
        if event in self.handlers and not handlers:
            del self.handlers[event]
            await self.pubsub.unsubscribe(self._channel(event))

    async def _listen(self) -> None:
        try:
            async for message in self.pubsub.listen():
                if message.get("type") != "message":
                    continue
                self._handle_message(message)
        except asyncio.CancelledError:
            raise
        except Exception:
            # the next subscribe() starts a new listener
            logger.exception("Redis listener stopped")

    def _handle_message(self, message: Dict[str, Any]) -> None:
        event = self._event(message["channel"])
        try:
            payload = json.loads(message["data"])
        except (TypeError, ValueError):
            logger.warning("Dropping non-JSON message on %s", message["channel"])
            return
        _dispatch(event, self.handlers.get(event, []), payload)

    async def close(self) -> None:
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None
        self.handlers.clear()
        await self.pubsub.aclose()
        await self.redis_client.aclose()
