"""
Logogram iteration.

A generator agent draws a logogram as SVG and an adversary agent critiques
it. Their replies arrive on the server's system-reply queue and are relayed
to each other until both signal ``stop`` or the exchange cap is reached.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, List

from pydantic import ValidationError

from glossa.api.models import (
    LogogramCritiqueResponse,
    LogogramIteration,
    LogogramIterationResponse,
)
from glossa.communication.agent_registry import AgentRegistry, ChatClient
from glossa.communication.chat_hub import ChatHub, drain
from glossa.communication.commands import await_reply, build_command, reset_targets, send_commands
from glossa.communication.errors import ExternalServiceError
from glossa.communication.message_types import Command, Generation, Layer, transcript_to_string
from glossa.workflows import prompts
from glossa.workflows.dictionary import DictionaryWorkflow, find_used_words

if TYPE_CHECKING:
    from glossa.api.broadcaster import Broadcasters, ReplayQueues
    from glossa.config import ServerConfig

logger = logging.getLogger(__name__)


class LogogramWorkflow:
    """Runs the generator/adversary loop for words of a generation."""

    def __init__(
        self,
        config: "ServerConfig",
        registry: AgentRegistry,
        hub: ChatHub,
        broadcasters: "Broadcasters",
        replay: "ReplayQueues",
        dictionary: DictionaryWorkflow,
    ):
        self.config = config
        self.registry = registry
        self.hub = hub
        self.broadcasters = broadcasters
        self.replay = replay
        self.dictionary = dictionary
        self.command = build_command(config.name)

    async def iterate_all(self, generation: Generation) -> Generation:
        """Iterate every dictionary word used in the logography transcript."""
        words = find_used_words(
            generation.dictionary, transcript_to_string(generation.transcript[Layer.LOGOGRAPHY])
        )
        logger.info(f"Iterating logograms for {len(words)} words")

        updated = generation.copy()
        for word in words:
            svg = await self.iterate_word(updated, word)
            updated.logography[word] = svg
            if word in updated.dictionary:
                updated.dictionary[word].logogram = svg
        return updated

    async def iterate_word(self, generation: Generation, word: str) -> str:
        """Returns the final SVG for ``word``."""
        generator = self.registry.get(self.config.logogram_generator)
        adversary = self.registry.get(self.config.logogram_adversary)
        clients = [generator, adversary]
        context = prompts.logogram_context(generation.specifications)

        await self._send(clients, self.command(Command.LATCH), self.command(Command.CLEAR_MEMORY))
        await self._send(
            [generator],
            self.command(Command.SET_INSTRUCTIONS, prompts.LOGOGRAM_GENERATOR_INSTRUCTIONS + context),
        )
        await self._send(
            [adversary],
            self.command(Command.SET_INSTRUCTIONS, prompts.LOGOGRAM_ADVERSARY_INSTRUCTIONS + context),
        )
        await self._send(clients, self.command(Command.UNLATCH))

        entry = generation.dictionary.get(word)
        svg = generation.logography.get(word) or (entry.logogram if entry else "")
        iteration = LogogramIteration(
            generator=LogogramIterationResponse(
                name=word,
                svg=svg,
                response=prompts.initial_logogram_response(word),
                stop=False,
            ),
            adversary=LogogramCritiqueResponse(name=word, stop=False),
        )

        drain(self.hub.channels.to_server)
        kickoff = self.command(Command.SEND_INITIAL_MESSAGE, iteration.generator.model_dump_json())
        await self.hub.channels.to_clients.put(kickoff(generator))
        self._publish(iteration)

        generator_ok = adversary_ok = False
        exchanges = 0
        while not (generator_ok and adversary_ok) and exchanges <= self.config.logogram_max_exchanges:
            reply = await await_reply(
                self.hub.channels.to_server, self.config.system_reply_timeout, "logogram agents"
            )
            iteration = iteration.model_copy()

            if reply.sender == generator.name:
                response = self._parse(reply.text, LogogramIterationResponse, generator)
                iteration.generator = response
                svg = response.svg
                generator_ok = response.stop
                follow_up = self.command(
                    Command.REQUEST_LOGOGRAM_CRITIQUE,
                    f"{response.name}\n{response.svg}\n\n{response.response}",
                )(adversary)
            elif reply.sender == adversary.name:
                response = self._parse(reply.text, LogogramCritiqueResponse, adversary)
                iteration.adversary = response
                adversary_ok = response.stop
                follow_up = self.command(Command.REQUEST_LOGOGRAM_ITERATION, response.response)(generator)
            else:
                logger.warning(f"Ignoring reply from {reply.sender} during logogram iteration")
                continue

            await self.dictionary.used_words(generation.dictionary, reply.text)
            self._publish(iteration)

            await asyncio.sleep(self.config.logogram_pause)
            await self.hub.channels.to_clients.put(follow_up)
            exchanges += 1
            logger.debug(f"Logogram exchanges for {word}: {exchanges}")

        await self._send(clients, *reset_targets(self.command))
        return svg

    def _publish(self, iteration: LogogramIteration) -> None:
        self.replay.logograms.enqueue(iteration)
        self.broadcasters.logograms.broadcast(iteration)

    def _parse(self, text: str, schema, agent: ChatClient):
        try:
            return schema.model_validate_json(text)
        except ValidationError as e:
            raise ExternalServiceError(f"{agent.name} sent an invalid logogram reply: {e}") from e

    async def _send(self, clients: List[ChatClient], *targets) -> None:
        await send_commands(
            self.hub.channels.to_clients, clients, *targets, delay=self.config.command_delay
        )
