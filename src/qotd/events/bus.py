"""EventBus — named-channel publish/subscribe inside one process.

Learn: publish() is synchronous. It drops the event into each consumer's
queue and returns; it never awaits a subscriber. A slow or dead consumer
therefore cannot stall the write path or its sibling consumers: when its
queue is full (or it has already been closed) that one delivery is dropped
and logged.

publish() walks a snapshot of the registry, so a consumer unsubscribing
while a publish is in progress cannot disturb the iteration.
"""

import asyncio
import itertools
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import structlog

from qotd.errors import QotdError

logger = structlog.get_logger()

_ids = itertools.count(1)
_CLOSED = object()


class ConsumerClosed(QotdError):
    """The consumer was unsubscribed or the bus was closed."""


class Consumer:
    """One subscriber's handle on a channel.

    Events are read in publish order with get() or `async for`. Iteration
    ends once the consumer is closed and its remaining events are drained.
    """

    def __init__(self, bus: "EventBus", channel: str, max_queue_size: int):
        self.id = next(_ids)
        self.channel = channel
        self.max_queue_size = max_queue_size
        self.dropped = 0
        self._bus = bus
        self._queue: asyncio.Queue = asyncio.Queue()
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    @property
    def pending(self) -> int:
        """Events delivered but not yet read."""
        return self._queue.qsize() - (0 if self._active else 1)

    def deliver(self, event: Any) -> bool:
        """Queue an event. Returns False when it had to be dropped."""
        if not self._active or self._queue.qsize() >= self.max_queue_size:
            self.dropped += 1
            return False
        self._queue.put_nowait(event)
        return True

    async def get(self) -> Any:
        item = await self._queue.get()
        if item is _CLOSED:
            # Leave the marker for any other reader.
            self._queue.put_nowait(_CLOSED)
            raise ConsumerClosed(f"consumer {self.id} on {self.channel} is closed")
        return item

    def unsubscribe(self) -> None:
        self._bus.unsubscribe(self)

    def _close(self) -> None:
        if not self._active:
            return
        self._active = False
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> "Consumer":
        return self

    async def __anext__(self) -> Any:
        try:
            return await self.get()
        except ConsumerClosed:
            raise StopAsyncIteration from None


class EventBus:
    """Registry of consumers keyed by channel name."""

    def __init__(self, max_queue_size: int = 100):
        self.max_queue_size = max_queue_size
        self._channels: dict[str, dict[int, Consumer]] = {}
        self._closed = False

    def subscribe(self, channel: str) -> Consumer:
        if self._closed:
            raise RuntimeError("event bus is closed")
        consumer = Consumer(self, channel, self.max_queue_size)
        self._channels.setdefault(channel, {})[consumer.id] = consumer
        logger.debug("event_bus.subscribed", channel=channel, consumer=consumer.id)
        return consumer

    def unsubscribe(self, consumer: Consumer) -> None:
        """Remove a consumer. Idempotent, and safe after close()."""
        registry = self._channels.get(consumer.channel)
        if registry is not None and registry.pop(consumer.id, None) is not None:
            if not registry:
                del self._channels[consumer.channel]
            logger.debug(
                "event_bus.unsubscribed", channel=consumer.channel, consumer=consumer.id
            )
        consumer._close()

    def publish(self, channel: str, event: Any) -> int:
        """Deliver event to every consumer registered right now.

        Returns the number of consumers that accepted it.
        """
        delivered = 0
        for consumer in list(self._channels.get(channel, {}).values()):
            try:
                accepted = consumer.deliver(event)
            except Exception:
                logger.exception(
                    "event_bus.delivery_failed", channel=channel, consumer=consumer.id
                )
                continue
            if accepted:
                delivered += 1
            else:
                logger.warning(
                    "event_bus.delivery_dropped",
                    channel=channel,
                    consumer=consumer.id,
                    dropped=consumer.dropped,
                )
        return delivered

    @asynccontextmanager
    async def subscription(self, channel: str) -> AsyncIterator[Consumer]:
        """Subscribe for the duration of the block; unsubscribe on any exit."""
        consumer = self.subscribe(channel)
        try:
            yield consumer
        finally:
            self.unsubscribe(consumer)

    def subscriber_count(self, channel: str) -> int:
        return len(self._channels.get(channel, {}))

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Tear down every channel and wake all consumers so they finish."""
        self._closed = True
        channels, self._channels = self._channels, {}
        for registry in channels.values():
            for consumer in registry.values():
                consumer._close()
        logger.info("event_bus.closed", channels=len(channels))
