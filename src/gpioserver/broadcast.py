"""Fan-out of unsolicited messages to connected clients"""

from __future__ import annotations
import asyncio
import logging
from typing import Any, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 32


class Subscription:
    """One client's bounded outbound queue"""

    def __init__(self, broadcaster: Broadcaster, maxsize: int):
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0
        self._broadcaster = broadcaster

    async def get(self) -> Any:
        return await self.queue.get()

    def offer(self, message: Any) -> None:
        """Enqueue without blocking, discarding the oldest message when full"""
        try:
            self.queue.put_nowait(message)
            return
        except asyncio.QueueFull:
            pass

        try:
            self.queue.get_nowait()
        except asyncio.QueueEmpty:
            pass
        self.dropped += 1
        self.queue.put_nowait(message)

    def close(self) -> None:
        self._broadcaster.unsubscribe(self)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class Broadcaster:
    """Publishes each message to every subscriber; publishing never blocks"""

    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE):
        self.queue_size = queue_size
        self._subscribers: List[Subscription] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> Subscription:
        subscription = Subscription(self, self.queue_size)
        self._subscribers.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)

    def publish(self, message: Any, exclude: Optional[Subscription] = None) -> None:
        for subscription in list(self._subscribers):
            if subscription is exclude:
                continue
            before = subscription.dropped
            subscription.offer(message)
            if subscription.dropped != before:
                logger.warning(f"Client queue full; dropped oldest message ({subscription.dropped} dropped so far)")
