"""
In-memory message store.

An append-only log used by the server to persist routed traffic and by each
agent as its conversation memory.
"""

import logging
import threading
from dataclasses import replace
from typing import List

from glossa.communication.errors import OutOfRangeError
from glossa.communication.message_types import Message

logger = logging.getLogger(__name__)


class MessageStore:
    """Thread-safe append-only message log. Reads return copies."""

    def __init__(self):
        self._lock = threading.Lock()
        self._messages: List[Message] = []
        self._next_id = 1

    def save(self, message: Message) -> Message:
        """Append a message, stamping it with the next id. Returns the stored copy."""
        with self._lock:
            stored = replace(message, id=self._next_id)
            self._next_id += 1
            self._messages.append(stored)
        return stored

    def retrieve(self, name: str, n: int = 0) -> List[Message]:
        """
        Return the last ``n`` messages inserted by ``name``.

        An empty name selects every message. ``n <= 0`` returns all of them.

        Raises:
            OutOfRangeError: If fewer than ``n`` messages are available
        """
        with self._lock:
            if name:
                selected = [m for m in self._messages if m.inserted_by == name]
            else:
                selected = list(self._messages)

        if n <= 0:
            return selected
        if n > len(selected):
            raise OutOfRangeError(f"requested {n} messages, only {len(selected)} stored")
        return selected[-n:]

    def retrieve_all(self) -> List[Message]:
        with self._lock:
            return list(self._messages)

    def clear(self) -> None:
        with self._lock:
            count = len(self._messages)
            self._messages.clear()
        logger.debug(f"Cleared {count} messages")

    def to_string(self) -> str:
        return "".join(f"{m.sender}: {m.text}\n" for m in self.retrieve_all())

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)
