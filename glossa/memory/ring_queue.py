"""
Fixed-capacity FIFO queues backed by one circular buffer.

StaticRingQueue refuses to overflow; DynamicRingQueue overwrites its oldest
items. Both are used for replay buffers, the generations schedule and the
job queue.
"""

import copy
import threading
from typing import Generic, List, Optional, TypeVar

from glossa.communication.errors import (
    CapacityError,
    QueueEmptyError,
    QueueFullError,
)

T = TypeVar("T")


class RingQueue(Generic[T]):
    """Circular buffer shared by the static and dynamic flavours."""

    dynamic = False

    def __init__(self, capacity: int):
        if capacity < 1:
            raise CapacityError(f"capacity must be positive, got {capacity}")
        self._capacity = capacity
        self._data: List[Optional[T]] = [None] * capacity
        self._head = 0
        self._size = 0
        self._lock = threading.Lock()

    def enqueue(self, *items: T) -> None:
        """
        Append items in order.

        Raises:
            CapacityError: No items, or more items than the queue can ever hold
            QueueFullError: Static queue without room for every item
        """
        if not items:
            raise CapacityError("nothing to enqueue")
        if len(items) > self._capacity:
            raise CapacityError(
                f"cannot enqueue {len(items)} items into capacity {self._capacity}"
            )

        with self._lock:
            overflow = self._size + len(items) - self._capacity
            if overflow > 0:
                if not self.dynamic:
                    raise QueueFullError(f"queue at capacity {self._capacity}")
                for _ in range(overflow):
                    self._pop_head()
            for item in items:
                tail = (self._head + self._size) % self._capacity
                self._data[tail] = item
                self._size += 1

    def dequeue(self) -> T:
        with self._lock:
            if self._size == 0:
                raise QueueEmptyError("queue is empty")
            return self._pop_head()

    def peek(self) -> T:
        with self._lock:
            if self._size == 0:
                raise QueueEmptyError("queue is empty")
            return self._data[self._head]

    def size(self) -> int:
        with self._lock:
            return self._size

    def capacity(self) -> int:
        return self._capacity

    def is_full(self) -> bool:
        return self.size() == self._capacity

    def to_slice(self) -> List[T]:
        """Deep-copied snapshot, oldest first. The queue itself is untouched."""
        with self._lock:
            data = copy.deepcopy(self._data)
            head, size = self._head, self._size

        snapshot = []
        for offset in range(size):
            snapshot.append(data[(head + offset) % self._capacity])
        return snapshot

    def __len__(self) -> int:
        return self.size()

    def _pop_head(self) -> T:
        item = self._data[self._head]
        self._data[self._head] = None
        self._head = (self._head + 1) % self._capacity
        self._size -= 1
        return item


class StaticRingQueue(RingQueue[T]):
    """Enqueue fails with QueueFullError once the queue is full."""

    dynamic = False


class DynamicRingQueue(RingQueue[T]):
    """Enqueue on a full queue evicts the oldest items first."""

    dynamic = True
