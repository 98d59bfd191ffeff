"""
Chat hub: the bidirectional stream server agents connect to.

Each accepted stream runs an ingress loop that registers the agent from its
first frame and then feeds every later frame into the shared inbound queue.
Egress is driven from outside through ``broadcast``/``forward``, either by
the router or by the dispatcher draining the outbound queue.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol

from glossa.communication.agent_registry import AgentRegistry, ChatClient
from glossa.communication.errors import (
    CoordinationError,
    NotFoundError,
    ProtocolError,
    TransportError,
)
from glossa.communication.message_types import Message

logger = logging.getLogger(__name__)

RESERVED_NAMES = frozenset({"SERVER", "SYSTEM"})


class StreamClosed(Exception):
    """Raised by an AgentStream when the peer closed the stream."""


class AgentStream(Protocol):
    """One agent connection. Implemented by the websocket adapter and by tests."""

    remote: str

    async def receive(self) -> Message:
        """Next frame from the agent. Raises StreamClosed at end of stream."""
        ...

    async def send(self, message: Message) -> None:
        """Write a frame to the agent. Raises TransportError on failure."""
        ...


@dataclass
class ServerChannels:
    """
    Queues connecting the hub, the router and the evolution engine.

    Attributes:
        inbound: Agent frames waiting for the router
        to_clients: Server-originated messages waiting for the dispatcher
        exchanges: Agent content tapped for the engine's exchange counter
        to_server: Replies addressed to the server on the system layer
        errors: Errors for the supervisor
    """
    inbound: asyncio.Queue = field(default_factory=lambda: asyncio.Queue(maxsize=256))
    to_clients: asyncio.Queue = field(default_factory=asyncio.Queue)
    exchanges: asyncio.Queue = field(default_factory=lambda: asyncio.Queue(maxsize=256))
    to_server: asyncio.Queue = field(default_factory=asyncio.Queue)
    errors: asyncio.Queue = field(default_factory=asyncio.Queue)

    @classmethod
    def create(cls, inbound_capacity: int = 256) -> "ServerChannels":
        return cls(
            inbound=asyncio.Queue(maxsize=inbound_capacity),
            exchanges=asyncio.Queue(maxsize=inbound_capacity),
        )

    def report(self, error: BaseException) -> None:
        self.errors.put_nowait(error)


def drain(queue: asyncio.Queue) -> int:
    """Discard everything currently queued. Returns how many items were dropped."""
    dropped = 0
    while True:
        try:
            queue.get_nowait()
        except asyncio.QueueEmpty:
            return dropped
        dropped += 1


class ChatHub:
    """Accepts agent streams and delivers server traffic back to them."""

    def __init__(self, name: str, registry: AgentRegistry, channels: ServerChannels):
        self.name = name
        self.registry = registry
        self.channels = channels
        self.listening = True
        self._claims_lock = threading.Lock()
        # claimed messages by id, held so an id is never reused while claimed
        self._claimed: Dict[int, Message] = {}

    async def serve_stream(self, stream: AgentStream) -> None:
        """
        Run the ingress loop for one agent stream until it closes.

        Raises:
            ProtocolError: If the first frame does not identify an agent
        """
        try:
            first = await stream.receive()
        except StreamClosed:
            logger.debug(f"Stream from {stream.remote} closed before identifying")
            return

        client = self._client_from_first_frame(first, stream)
        self.registry.add(client)
        try:
            await self._listen(client)
        finally:
            self.registry.remove(client)

    def _client_from_first_frame(self, first: Message, stream: AgentStream) -> ChatClient:
        if not first.sender:
            raise ProtocolError("first frame must carry the agent name")
        if not first.text:
            raise ProtocolError(f"first frame from {first.sender} must carry a model label")
        if first.sender in RESERVED_NAMES or first.sender == self.name:
            raise ProtocolError(f"agent name {first.sender!r} is reserved")
        return ChatClient(name=first.sender, model=first.text, layer=first.layer, stream=stream)

    async def _listen(self, client: ChatClient) -> None:
        while True:
            try:
                message = await client.stream.receive()
            except StreamClosed:
                logger.info(f"{client.name} disconnected")
                return
            except ProtocolError as e:
                logger.warning(f"Dropping malformed frame from {client.name}: {e}")
                continue
            except TransportError as e:
                logger.warning(f"{client.name} disconnected unexpectedly: {e}")
                self.channels.report(e)
                return

            claimed = client.deliver_to_side_channels(message)
            if not self.listening:
                continue

            if claimed:
                self.claim(message)
            try:
                self.channels.inbound.put_nowait(message)
            except asyncio.QueueFull:
                self.consume_claim(message)
                logger.warning(f"Inbound queue full, dropped message from {client.name}")

    def claim(self, message: Message) -> None:
        """Mark a message a side channel has already received."""
        with self._claims_lock:
            self._claimed[id(message)] = message

    def consume_claim(self, message: Message) -> bool:
        """True if a side channel already received this message. Clears the mark."""
        with self._claims_lock:
            if self._claimed.get(id(message)) is message:
                del self._claimed[id(message)]
                return True
        return False

    @property
    def pending_claims(self) -> int:
        with self._claims_lock:
            return len(self._claimed)

    async def forward(self, message: Message) -> None:
        """
        Deliver a message to its receiver.

        Raises:
            NotFoundError: If the receiver is not connected
            TransportError: If the write fails
        """
        client = self.registry.get(message.receiver)
        await client.send(message)

    async def broadcast(self, message: Message) -> None:
        """
        Deliver to the receiver, or to every agent on the message's layer
        except the sender when no receiver is set.

        Every target is attempted; the first failure is raised afterwards.
        """
        if message.receiver:
            await self.forward(message)
            return

        first_error: Optional[CoordinationError] = None
        for client in self.registry.by_layer(message.layer):
            if client.name == message.sender:
                continue
            try:
                await client.send(message)
            except TransportError as e:
                logger.warning(f"Broadcast to {client.name} failed: {e}")
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error

    async def send_with_channel(self, message: Message) -> asyncio.Queue:
        """
        Queue a message for its receiver and return a queue that will hold
        the receiver's next inbound message.

        Raises:
            NotFoundError: If the receiver is not connected
        """
        client = self.registry.get(message.receiver)
        channel: asyncio.Queue = asyncio.Queue(maxsize=1)
        client.add_side_channel(channel)
        await self.channels.to_clients.put(message)
        return channel

    async def dispatch(self) -> None:
        """Drain the outbound queue forever, delivering each message."""
        while True:
            message = await self.channels.to_clients.get()
            try:
                await self.broadcast(message)
            except (NotFoundError, TransportError) as e:
                self.channels.report(e)

    def stop_listening(self) -> None:
        self.listening = False
        logger.info("Hub stopped accepting new messages")

