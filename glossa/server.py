"""
Glossa coordination server.

Wires the registry, chat hub, router, evolution engine and web surface
together and supervises their tasks. Non-fatal errors reported on the error
queue are logged; the first fatal one shuts the server down.
"""

import asyncio
import logging
from typing import Awaitable, List, Optional

import uvicorn

from glossa.api.broadcaster import Broadcasters, ReplayQueues
from glossa.api.hub_app import create_hub_app
from glossa.api.web import broadcast_test_data, broadcast_time, create_web_app, load_test_data
from glossa.communication.agent_registry import AgentRegistry
from glossa.communication.chat_hub import ChatHub, ServerChannels
from glossa.communication.errors import CoordinationError
from glossa.communication.message_types import Generation
from glossa.communication.router import (
    Handler,
    MessageRouter,
    console_log_handler,
    forward_handler,
    persist_handler,
    procedure_tap,
    sse_tap,
)
from glossa.config import ServerConfig
from glossa.memory.message_store import MessageStore
from glossa.memory.persistence import load_initial_generation
from glossa.memory.ring_queue import StaticRingQueue
from glossa.workflows.evolution import EvolutionEngine

logger = logging.getLogger(__name__)


class ConlangServer:
    """
    The coordination server.

    Args:
        config: Validated server configuration
        seed: Initial generation; loaded from the configured files when omitted
        store: Message store for routed traffic
    """

    def __init__(
        self,
        config: ServerConfig,
        seed: Optional[Generation] = None,
        store: Optional[MessageStore] = None,
    ):
        self.config = config
        self.store = store or MessageStore()
        self.registry = AgentRegistry()
        self.channels = ServerChannels.create(config.inbound_capacity)
        self.hub = ChatHub(config.name, self.registry, self.channels)
        self.broadcasters = Broadcasters()
        self.replay = ReplayQueues.create(config.recent_capacity)

        if seed is None:
            seed = load_initial_generation(
                config.specifications_dir, config.dictionary_path, config.logography_dir
            )
        self.generations: StaticRingQueue[Generation] = StaticRingQueue(config.max_generations + 1)
        self.generations.enqueue(seed)

        self.router = MessageRouter(self.channels.inbound, self.routes(), self.channels.errors)
        self.engine = EvolutionEngine(
            config,
            self.registry,
            self.hub,
            self.store,
            self.generations,
            self.broadcasters,
            self.replay,
        )
        self._tasks: List[asyncio.Task] = []

    def routes(self) -> List[Handler]:
        """Router handlers in the order they apply to every message."""
        return [
            console_log_handler(),
            persist_handler(self.store, self.config.name),
            forward_handler(self.hub, self.channels.to_server, self.config.name),
            procedure_tap(self.channels.exchanges, self.config.name),
            sse_tap(self.replay.messages, self.broadcasters.messages.broadcast),
        ]

    async def run(self, serve_http: bool = True) -> Optional[BaseException]:
        """
        Run until a fatal error, cancellation or both HTTP servers exit.

        Returns:
            The fatal error that stopped the server, if any
        """
        self._spawn("dispatcher", self.hub.dispatch())
        self._spawn("router", self.router.run())
        self._spawn("heartbeat", broadcast_time(self.broadcasters.current_time))
        self._spawn("evolution", self._evolve())

        if self.config.broadcast_test_data:
            messages, generations = load_test_data(
                self.config.test_chats_path, self.config.test_generations_path
            )
            self._spawn("test-data", broadcast_test_data(self.broadcasters, messages, generations))

        waiters = [asyncio.ensure_future(self.supervise())]
        if serve_http:
            waiters.append(asyncio.ensure_future(self._serve(
                create_hub_app(self.hub), self.config.router_port, "hub")))
            waiters.append(asyncio.ensure_future(self._serve(
                create_web_app(self), self.config.web_port, "web")))

        try:
            done, _ = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
            supervisor = waiters[0]
            return supervisor.result() if supervisor in done else None
        finally:
            for waiter in waiters:
                waiter.cancel()
            await self.shutdown()

    async def supervise(self) -> BaseException:
        """Log errors from the error queue until a fatal one arrives, then return it."""
        while True:
            error = await self.channels.errors.get()
            if isinstance(error, CoordinationError) and not error.fatal:
                logger.warning(f"{error}")
                continue
            logger.error(f"Fatal error, shutting down: {error}")
            return error

    async def shutdown(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Server stopped")

    async def _evolve(self) -> None:
        try:
            await self.engine.evolve()
        except CoordinationError as e:
            self.channels.report(e)
            return
        logger.info("Evolution complete, still serving web clients")

    async def _serve(self, app, port: int, label: str) -> None:
        config = uvicorn.Config(
            app,
            host=self.config.host,
            port=port,
            log_level="debug" if self.config.debug else "info",
        )
        logger.info(f"Starting {label} server on {self.config.host}:{port}")
        await uvicorn.Server(config).serve()

    def _spawn(self, name: str, coro: Awaitable[None]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        task.set_name(name)
        task.add_done_callback(self._on_task_done)
        self._tasks.append(task)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Task {task.get_name()} failed: {error!r}")
            self.channels.report(error)
