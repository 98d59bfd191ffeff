"""
Server-sent event broadcasting.

A Broadcaster is one topic with a set of subscribers. Publishing never
blocks: each subscriber owns a small queue and a slow subscriber simply
misses items. On subscribe, an optional replay snapshot is streamed before
live items.
"""

import asyncio
import json
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Generic, Iterable, Set, TypeVar

from glossa.memory.ring_queue import DynamicRingQueue

logger = logging.getLogger(__name__)

T = TypeVar("T")

SUBSCRIBER_CAPACITY = 10

EVENT_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "Access-Control-Allow-Origin": "*",
}


def to_jsonable(item: Any) -> Any:
    if hasattr(item, "to_dict"):
        return item.to_dict()
    if isinstance(item, (list, tuple)):
        return [to_jsonable(i) for i in item]
    return item


def format_event(item: Any) -> str:
    """``data: <JSON>`` followed by a blank line."""
    return f"data: {json.dumps(to_jsonable(item))}\n\n"


class WebClient(Generic[T]):
    """One SSE subscriber."""

    def __init__(self, remote: str, capacity: int = SUBSCRIBER_CAPACITY):
        self.remote = remote
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=capacity)
        self.dropped = 0

    def offer(self, item: T) -> bool:
        try:
            self.queue.put_nowait(item)
            return True
        except asyncio.QueueFull:
            self.dropped += 1
            return False


class Broadcaster(Generic[T]):
    """A topic fanning items out to every subscriber."""

    def __init__(self, topic: str):
        self.topic = topic
        self._lock = threading.Lock()
        self._clients: Set[WebClient[T]] = set()

    def subscribe(self, remote: str = "") -> WebClient[T]:
        client: WebClient[T] = WebClient(remote)
        with self._lock:
            self._clients.add(client)
        logger.info(f"{remote or 'client'} subscribed to {self.topic}")
        return client

    def unsubscribe(self, client: WebClient[T]) -> None:
        with self._lock:
            self._clients.discard(client)
        logger.info(f"{client.remote or 'client'} left {self.topic}")

    def broadcast(self, item: T) -> int:
        """Offer ``item`` to every subscriber. Returns how many accepted it."""
        with self._lock:
            clients = list(self._clients)

        delivered = 0
        for client in clients:
            if client.offer(item):
                delivered += 1
            else:
                logger.debug(f"{self.topic}: dropped item for slow subscriber {client.remote}")
        return delivered

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._clients)

    async def stream(self, client: WebClient[T], replay: Iterable[T] = ()) -> AsyncIterator[str]:
        """Yield formatted events: the replay first, then live items until cancelled."""
        try:
            for item in replay:
                yield format_event(item)
            while True:
                item = await client.queue.get()
                yield format_event(item)
        finally:
            self.unsubscribe(client)


@dataclass
class Broadcasters:
    """Every SSE topic the web app serves."""
    messages: Broadcaster = field(default_factory=lambda: Broadcaster("chat"))
    generations: Broadcaster = field(default_factory=lambda: Broadcaster("generations"))
    specifications: Broadcaster = field(default_factory=lambda: Broadcaster("specifications"))
    current_time: Broadcaster = field(default_factory=lambda: Broadcaster("time"))
    used_words: Broadcaster = field(default_factory=lambda: Broadcaster("words"))
    logograms: Broadcaster = field(default_factory=lambda: Broadcaster("logograms"))
    test_messages: Broadcaster = field(default_factory=lambda: Broadcaster("test/chat"))
    test_generations: Broadcaster = field(default_factory=lambda: Broadcaster("test/generations"))


@dataclass
class ReplayQueues:
    """Recent items replayed to new subscribers."""
    messages: DynamicRingQueue
    generations: DynamicRingQueue
    specifications: DynamicRingQueue
    logograms: DynamicRingQueue

    @classmethod
    def create(cls, capacity: int) -> "ReplayQueues":
        return cls(
            messages=DynamicRingQueue(capacity),
            generations=DynamicRingQueue(capacity),
            specifications=DynamicRingQueue(capacity),
            logograms=DynamicRingQueue(capacity),
        )
