"""
Agent registry for the chat hub.

Tracks connected agents by name and by layer. Both indices and the total
counter change together under a single lock, so an agent is in the by-name
index exactly when it is in the by-layer index of its declared layer.
"""

import asyncio
import logging
import threading
import time
from typing import TYPE_CHECKING, Any, Dict, List

from glossa.communication.errors import NotFoundError, ProtocolError, TransportError
from glossa.communication.message_types import Layer, Message

if TYPE_CHECKING:
    from glossa.communication.chat_hub import AgentStream

logger = logging.getLogger(__name__)


class ChatClient:
    """
    A connected agent.

    Holds the agent's stream plus any one-shot side channels registered by
    ``ChatHub.send_with_channel``. Side channels are guarded by the client's
    own lock.
    """

    def __init__(self, name: str, model: str, layer: Layer, stream: "AgentStream"):
        self.name = name
        self.model = model
        self.layer = layer
        self.stream = stream
        self.connected_at = time.time()
        self._lock = threading.Lock()
        self._side_channels: List[asyncio.Queue] = []

    async def send(self, message: Message) -> None:
        """Write a frame to this agent's stream."""
        try:
            await self.stream.send(message)
        except TransportError:
            raise
        except Exception as e:
            raise TransportError(f"failed to send to {self.name}: {e}") from e

    def add_side_channel(self, channel: asyncio.Queue) -> None:
        with self._lock:
            self._side_channels.append(channel)

    def deliver_to_side_channels(self, message: Message) -> bool:
        """Hand an inbound message to every waiting side channel. Returns True if any took it."""
        with self._lock:
            channels, self._side_channels = self._side_channels, []

        for channel in channels:
            try:
                channel.put_nowait(message)
            except asyncio.QueueFull:
                logger.debug(f"Side channel for {self.name} already holds a reply")
        return bool(channels)

    def describe(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "model": self.model,
            "layer": str(self.layer),
            "connected_at": self.connected_at,
        }

    def __repr__(self) -> str:
        return f"ChatClient(name={self.name!r}, layer={self.layer})"


class AgentRegistry:
    """Connected agents indexed by name and by layer."""

    def __init__(self):
        self._lock = threading.Lock()
        self._by_name: Dict[str, ChatClient] = {}
        # dict keys keep registration order
        self._by_layer: Dict[Layer, Dict[str, None]] = {layer: {} for layer in Layer}
        self._total = 0

    def add(self, client: ChatClient) -> None:
        """
        Register a client.

        Raises:
            ProtocolError: If the name is already connected
        """
        with self._lock:
            if client.name in self._by_name:
                raise ProtocolError(f"agent {client.name!r} is already connected")
            self._by_name[client.name] = client
            self._by_layer[client.layer][client.name] = None
            self._total += 1
            total = self._total

        logger.info(f"Registered {client.name} ({client.model}) on {client.layer}, {total} connected")

    def remove(self, client: ChatClient) -> bool:
        """Deregister a client. Returns False if it was not registered."""
        with self._lock:
            current = self._by_name.get(client.name)
            if current is not client:
                return False
            del self._by_name[client.name]
            self._by_layer[client.layer].pop(client.name, None)
            self._total -= 1
            total = self._total

        logger.info(f"Removed {client.name} from {client.layer}, {total} connected")
        return True

    def get(self, name: str) -> ChatClient:
        """
        Raises:
            NotFoundError: If no agent with that name is connected
        """
        with self._lock:
            client = self._by_name.get(name)
        if client is None:
            raise NotFoundError(f"agent {name!r} is not connected")
        return client

    def by_layer(self, layer: Layer) -> List[ChatClient]:
        """Agents on ``layer`` in registration order."""
        with self._lock:
            return [self._by_name[name] for name in self._by_layer[layer]]

    @property
    def total(self) -> int:
        with self._lock:
            return self._total

    def snapshot(self) -> List[Dict[str, Any]]:
        with self._lock:
            clients = list(self._by_name.values())
        return [client.describe() for client in clients]

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._by_name
