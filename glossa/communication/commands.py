"""Builders for addressed command messages and the sender that queues them."""

import asyncio
import logging
from typing import Callable, Iterable, Optional

from glossa.communication.agent_registry import ChatClient
from glossa.communication.errors import CancelledOperationError
from glossa.communication.message_types import Command, Message

logger = logging.getLogger(__name__)

CommandTarget = Callable[[ChatClient], Message]
CommandFactory = Callable[..., CommandTarget]


def build_command(sender: str) -> CommandFactory:
    """
    Curry a command factory for ``sender``.

    ``build_command("SERVER")(Command.LATCH)`` returns a function that, given
    an agent, produces a LATCH message addressed to it on its own layer.
    """

    def command(cmd: Command, content: str = "") -> CommandTarget:
        def target(client: ChatClient) -> Message:
            return Message(
                sender=sender,
                receiver=client.name,
                text=content,
                layer=client.layer,
                command=cmd,
            )

        return target

    return command


async def send_commands(
    outbound: asyncio.Queue,
    clients: Iterable[ChatClient],
    *targets: CommandTarget,
    delay: float = 0.0,
) -> int:
    """
    Queue every target for every client, clients outer and commands inner.

    Each message is followed by a sleep of ``delay`` seconds, which is also
    where cancellation of the calling task takes effect. Returns the number
    of messages queued.
    """
    sent = 0
    for client in clients:
        for target in targets:
            message = target(client)
            await outbound.put(message)
            sent += 1
            logger.debug(f"Queued {message.command.name} for {client.name}")
            await asyncio.sleep(delay)
    return sent


async def await_reply(channel: asyncio.Queue, timeout: Optional[float], waiting_for: str) -> Message:
    """
    Take one reply from ``channel``. ``timeout=None`` waits indefinitely.

    Raises:
        CancelledOperationError: If the timeout expires first
    """
    try:
        return await asyncio.wait_for(channel.get(), timeout)
    except asyncio.TimeoutError:
        raise CancelledOperationError(f"no reply from {waiting_for} within {timeout}s")


def reset_targets(command: CommandFactory) -> tuple:
    """The latch, clear-memory, reset-instructions sequence that ends every round."""
    return (
        command(Command.LATCH),
        command(Command.CLEAR_MEMORY),
        command(Command.RESET_INSTRUCTIONS),
    )
