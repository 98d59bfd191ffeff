"""
Evolution engine.

Drives generations of the language. Each generation walks the working
layers from phonetics upward. For every layer with connected agents the
engine primes and unlatches them, kicks off the conversation, counts the
tapped exchanges, latches and resets them, and asks the system agent to
fold the transcript into a revised specification.
"""

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Dict, List

from glossa.communication.agent_registry import AgentRegistry, ChatClient
from glossa.communication.chat_hub import ChatHub, drain
from glossa.communication.commands import await_reply, build_command, reset_targets, send_commands
from glossa.communication.errors import NotFoundError
from glossa.communication.message_types import (
    WORKING_LAYERS,
    Command,
    Generation,
    Layer,
    Message,
    transcript_to_string,
)
from glossa.memory.message_store import MessageStore
from glossa.memory.persistence import export_snapshots
from glossa.memory.ring_queue import StaticRingQueue
from glossa.workflows import prompts
from glossa.workflows.dictionary import DictionaryWorkflow
from glossa.workflows.jobs import JobProcessor, JobQueue
from glossa.workflows.logograms import LogogramWorkflow

if TYPE_CHECKING:
    from glossa.api.broadcaster import Broadcasters, ReplayQueues
    from glossa.config import ServerConfig

logger = logging.getLogger(__name__)

# jobs scheduled per generation, plus wait-for-quorum and export
JOBS_PER_GENERATION = 4


class EvolutionEngine:
    """
    The generational state machine.

    Args:
        config: Server configuration
        registry: Connected agents
        hub: Chat hub, for its queues and side channels
        store: Message store the router persists into
        generations: Static queue holding the seed and each new generation
        broadcasters: SSE topics
        replay: Replay queues for SSE subscribers
    """

    def __init__(
        self,
        config: "ServerConfig",
        registry: AgentRegistry,
        hub: ChatHub,
        store: MessageStore,
        generations: StaticRingQueue,
        broadcasters: "Broadcasters",
        replay: "ReplayQueues",
    ):
        self.config = config
        self.registry = registry
        self.hub = hub
        self.channels = hub.channels
        self.store = store
        self.generations = generations
        self.broadcasters = broadcasters
        self.replay = replay
        self.command = build_command(config.name)

        self.dictionary = DictionaryWorkflow(config, registry, hub, broadcasters.used_words)
        self.logograms = LogogramWorkflow(
            config, registry, hub, broadcasters, replay, self.dictionary
        )
        self.jobs = JobQueue(config.max_generations * JOBS_PER_GENERATION + 2)
        self.processor = JobProcessor(self.jobs)
        self.exported: Dict[str, str] = {}

    # ------------------------------------------------------------------
    # Schedule
    # ------------------------------------------------------------------

    async def evolve(self) -> None:
        """Run every generation, then stop listening and export the data."""
        self.schedule()
        await self.processor.process()

    def schedule(self) -> None:
        self.jobs.schedule("wait-for-clients", self.wait_for_clients)
        for index in range(self.config.max_generations):
            pending: Dict[str, Generation] = {}
            self.jobs.schedule(f"iterate-specs-{index + 1}", self._iterate_specs_job(index, pending))
            if self.config.dictionary_updates:
                self.jobs.schedule(f"update-dictionary-{index + 1}", self._dictionary_job(pending))
            if self.config.logogram_iterations:
                self.jobs.schedule(f"iterate-logograms-{index + 1}", self._logogram_job(pending))
            self.jobs.schedule(f"update-generations-{index + 1}", self._publish_job(index, pending))
        self.jobs.schedule("export-data", self.export_data)

    def _iterate_specs_job(self, index: int, pending: Dict[str, Generation]):
        async def run() -> None:
            source = self.generations.to_slice()[index]
            pending["generation"] = await self.iterate(source, Layer.LOGOGRAPHY, self.config.max_exchanges)
            logger.info(f"Generation {index + 1} specs completed")

        return run

    def _dictionary_job(self, pending: Dict[str, Generation]):
        async def run() -> None:
            generation = pending["generation"]
            generation.dictionary = await self.dictionary.update(generation)

        return run

    def _logogram_job(self, pending: Dict[str, Generation]):
        async def run() -> None:
            pending["generation"] = await self.logograms.iterate_all(pending["generation"])

        return run

    def _publish_job(self, index: int, pending: Dict[str, Generation]):
        async def run() -> None:
            generation = pending.pop("generation")
            self.generations.enqueue(generation)
            self.replay.generations.enqueue(generation)
            self.broadcasters.generations.broadcast(generation)
            logger.info(f"Generation {index + 1} of {self.config.max_generations} published")

        return run

    async def wait_for_clients(self) -> None:
        """Poll until the quorum of agents is connected."""
        target = self.config.target_agents
        logger.info(f"Waiting for {target} agents to join...")
        while self.registry.total < target:
            await asyncio.sleep(self.config.quorum_poll_interval)
        logger.info("All clients joined!")

    async def export_data(self) -> None:
        self.hub.stop_listening()
        if not self.config.export_data:
            return
        paths = export_snapshots(
            self.config.outputs_dir, self.store.retrieve_all(), self.generations.to_slice()
        )
        self.exported = {key: str(path) for key, path in paths.items()}

    # ------------------------------------------------------------------
    # Iteration
    # ------------------------------------------------------------------

    async def iterate(self, generation: Generation, layer: Layer, exchanges: int) -> Generation:
        """
        Produce the next generation from ``generation`` up to ``layer``.

        Layers are processed lowest first; each sees the specifications the
        layers below it just produced. ``Layer.SYSTEM`` returns a shell with
        an empty transcript and sends nothing.
        """
        current = generation.shell()
        for working in WORKING_LAYERS:
            if working > layer:
                break
            current = await self.iterate_layer(generation, current, working, exchanges)
        return current

    async def iterate_layer(
        self, origin: Generation, previous: Generation, layer: Layer, exchanges: int
    ) -> Generation:
        started = time.time()
        generation = previous.copy()
        clients = self.registry.by_layer(layer)
        if not clients:
            logger.info(f"No agents on {layer}, keeping its specification")
            return generation

        system_agent = self._system_agent()
        logger.info(f"{int(layer)}: Iterating on {layer} with {len(clients)} agents")

        instructions = prompts.initial_instructions(
            layer, generation.specifications, generation.dictionary
        )
        await self._send(
            clients,
            self.command(Command.APPEND_INSTRUCTIONS, instructions),
            self.command(Command.UNLATCH),
        )

        drain(self.channels.exchanges)
        kickoff = self.command(Command.SEND_INITIAL_MESSAGE, prompts.kickoff_message(layer))
        await self.channels.to_clients.put(kickoff(clients[0]))

        transcript = generation.transcript[layer]
        for count in range(exchanges):
            message = await self.channels.exchanges.get()
            transcript.append(message)
            await self.dictionary.used_words(generation.dictionary, message.text)
            logger.info(f"Exchange total: {count + 1}/{exchanges}")

        await self._send(clients, *reset_targets(self.command))

        recent = transcript[-exchanges:] if exchanges else []
        drain(self.channels.to_server)
        await self._send(
            [system_agent],
            self.command(
                Command.APPEND_INSTRUCTIONS,
                prompts.summarization_instructions(layer, origin.specifications.get(layer, "")),
            ),
            self.command(Command.UNLATCH),
        )
        await self.channels.to_clients.put(
            self._message_to_system_agent(system_agent, transcript_to_string(recent))
        )
        reply = await await_reply(
            self.channels.to_server, self.config.system_reply_timeout, system_agent.name
        )

        # only the layer's clients are reset; the system agent stays unlatched
        await self._send(clients, *reset_targets(self.command))

        generation.specifications[layer] = reply.text
        self._publish_specifications(generation)
        logger.info(f"{layer} took {time.time() - started:.2f}s to complete")
        return generation

    def _system_agent(self) -> ChatClient:
        if self.config.summarizer_agent:
            return self.registry.get(self.config.summarizer_agent)
        agents = self.registry.by_layer(Layer.SYSTEM)
        if not agents:
            raise NotFoundError("no system agent is connected")
        return agents[0]

    def _message_to_system_agent(self, agent: ChatClient, text: str) -> Message:
        return Message(
            sender=self.config.name,
            receiver=agent.name,
            text=text,
            layer=Layer.SYSTEM,
        )

    def _publish_specifications(self, generation: Generation) -> None:
        specifications = {str(layer): text for layer, text in generation.specifications.items()}
        self.replay.specifications.enqueue(specifications)
        self.broadcasters.specifications.broadcast(specifications)

    async def _send(self, clients: List[ChatClient], *targets) -> int:
        return await send_commands(
            self.channels.to_clients, clients, *targets, delay=self.config.command_delay
        )
