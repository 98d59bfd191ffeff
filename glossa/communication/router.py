"""
Message router.

A single consumer of the inbound queue that applies an ordered list of
handlers to every message. A failing handler reports to the error queue and
the remaining handlers still run for that message.

The module also provides the standard handlers the server installs, in the
order it installs them: console log, persist, forward, procedure tap and
SSE tap.
"""

import asyncio
import logging
from dataclasses import replace
from typing import Awaitable, Callable, List, Sequence

from glossa.communication.chat_hub import ChatHub
from glossa.communication.errors import CoordinationError
from glossa.communication.message_types import ChatRole, Layer, Message
from glossa.memory.message_store import MessageStore
from glossa.memory.ring_queue import RingQueue

logger = logging.getLogger(__name__)

Handler = Callable[[Message], Awaitable[None]]


class MessageRouter:
    """Applies handlers, in order, to each message from ``source``."""

    def __init__(self, source: asyncio.Queue, handlers: Sequence[Handler], errors: asyncio.Queue):
        self.source = source
        self.handlers: List[Handler] = list(handlers)
        self.errors = errors
        self.routed = 0

    async def route(self, message: Message) -> None:
        for handler in self.handlers:
            try:
                await handler(message)
            except CoordinationError as e:
                self.errors.put_nowait(e)
        self.routed += 1

    async def run(self) -> None:
        logger.info(f"Router started with {len(self.handlers)} handlers")
        while True:
            message = await self.source.get()
            await self.route(message)


def console_log_handler() -> Handler:
    async def handle(message: Message) -> None:
        if message.is_command:
            logger.debug(
                f"[command {message.command.name}] {message.sender} -> "
                f"{message.receiver or '*'} on {message.layer}"
            )
        else:
            logger.debug(f"[{message.layer}] {message.sender}: {message.text}")

    return handle


def persist_handler(store: MessageStore, inserted_by: str) -> Handler:
    async def handle(message: Message) -> None:
        store.save(replace(message, role=ChatRole.USER, inserted_by=inserted_by))

    return handle


def forward_handler(hub: ChatHub, to_server: asyncio.Queue, server_name: str) -> Handler:
    """
    Redirect system-layer replies to the server; broadcast everything else.

    Replies already taken by a side channel are not redirected. Every message
    clears its claim here, whichever path it takes.
    """

    async def handle(message: Message) -> None:
        claimed = hub.consume_claim(message)
        if message.layer == Layer.SYSTEM and message.receiver == server_name:
            if not claimed:
                await to_server.put(message)
            return
        await hub.broadcast(message)

    return handle


def procedure_tap(exchanges: asyncio.Queue, server_name: str) -> Handler:
    """Offer agent conversation to the engine's exchange counter, dropping on full."""

    async def handle(message: Message) -> None:
        if message.sender == server_name or message.is_command:
            return
        if message.layer == Layer.SYSTEM:
            return
        try:
            exchanges.put_nowait(message)
        except asyncio.QueueFull:
            logger.debug(f"Exchange queue full, not counting message from {message.sender}")

    return handle


def sse_tap(recent: RingQueue, publish: Callable[[Message], None]) -> Handler:
    """Keep the message for replay and push it to live subscribers."""

    async def handle(message: Message) -> None:
        recent.enqueue(message)
        publish(message)

    return handle
