"""
Glossa web surface.

Server-sent event streams of the conversation, the generations, the
specifications, detected words and logograms, plus a heartbeat clock and
health endpoints. Every stream replays its recent items before going live.

Usage:
    app = create_web_app(server)
    uvicorn.run(app, port=7070)
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import StreamingResponse

from glossa import __version__
from glossa.api.broadcaster import EVENT_HEADERS, Broadcaster, Broadcasters
from glossa.api.models import AgentInfo, HealthStatus
from glossa.communication.message_types import Generation, Message
from glossa.memory.persistence import load_generations, load_messages

if TYPE_CHECKING:
    from glossa.server import ConlangServer

logger = logging.getLogger(__name__)

TEST_CHAT_INTERVAL = 1.0
TEST_GENERATIONS_INTERVAL = 3.0


def event_stream(broadcaster: Broadcaster, request: Request, replay: Iterable[Any] = ()) -> StreamingResponse:
    """Subscribe the requesting client and stream ``replay`` followed by live items."""
    remote = f"{request.client.host}:{request.client.port}" if request.client else ""
    client = broadcaster.subscribe(remote)
    return StreamingResponse(
        broadcaster.stream(client, list(replay)),
        media_type="text/event-stream",
        headers=EVENT_HEADERS,
    )


def current_time(now: Optional[datetime] = None) -> str:
    """UnixDate layout, e.g. ``Mon Jan  2 15:04:05 UTC 2006``."""
    now = now or datetime.now().astimezone()
    return f"{now:%a %b} {now.day:2d} {now:%H:%M:%S %Z %Y}"


async def broadcast_time(broadcaster: Broadcaster, interval: float = 1.0) -> None:
    """Emit the formatted time on ``broadcaster`` every ``interval`` seconds."""
    while True:
        broadcaster.broadcast(current_time())
        await asyncio.sleep(interval)


async def replay_forever(broadcaster: Broadcaster, items: List[Any], interval: float) -> None:
    """Cycle through ``items`` on ``broadcaster``, one every ``interval`` seconds."""
    if not items:
        logger.warning(f"No test data for {broadcaster.topic}")
        return
    while True:
        for item in items:
            broadcaster.broadcast(item)
            await asyncio.sleep(interval)


async def broadcast_test_data(
    broadcasters: Broadcasters, messages: List[Message], generations: List[Generation]
) -> None:
    """Replay exported chats on /test/chat and generations on /test/generations."""
    await asyncio.gather(
        replay_forever(broadcasters.test_messages, messages, TEST_CHAT_INTERVAL),
        replay_forever(broadcasters.test_generations, generations, TEST_GENERATIONS_INTERVAL),
    )


def create_web_app(server: "ConlangServer") -> FastAPI:
    """Build the SSE application for ``server``."""
    app = FastAPI(
        title="Glossa",
        description="Live view of agents evolving a constructed language.",
        version=__version__,
    )
    app.state.server = server

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    broadcasters = server.broadcasters
    replay = server.replay

    # ========================================================================
    # Root Endpoints
    # ========================================================================

    @app.get("/", tags=["Root"])
    async def root() -> Dict[str, Any]:
        return {
            "name": "Glossa",
            "version": __version__,
            "status": "online",
            "streams": [
                "/time", "/chat", "/generations", "/specifications",
                "/words", "/logograms", "/test/chat", "/test/generations",
            ],
        }

    @app.get("/health", tags=["Root"], response_model=HealthStatus)
    async def health() -> HealthStatus:
        return HealthStatus(
            status="healthy",
            version=__version__,
            timestamp=time.time(),
            listening=server.hub.listening,
            connected_agents=server.registry.total,
            agents=[AgentInfo(**agent) for agent in server.registry.snapshot()],
            generations=max(server.generations.size() - 1, 0),
            current_job=server.engine.processor.current,
        )

    # ========================================================================
    # Event Streams
    # ========================================================================

    @app.get("/time", tags=["Streams"])
    async def time_stream(request: Request) -> StreamingResponse:
        return event_stream(broadcasters.current_time, request)

    @app.get("/chat", tags=["Streams"])
    async def chat_stream(request: Request) -> StreamingResponse:
        return event_stream(broadcasters.messages, request, replay.messages.to_slice())

    @app.get("/generations", tags=["Streams"])
    async def generations_stream(request: Request) -> StreamingResponse:
        return event_stream(broadcasters.generations, request, server.generations.to_slice())

    @app.get("/specifications", tags=["Streams"])
    async def specifications_stream(request: Request) -> StreamingResponse:
        return event_stream(broadcasters.specifications, request, replay.specifications.to_slice())

    @app.get("/words", tags=["Streams"])
    async def words_stream(request: Request) -> StreamingResponse:
        return event_stream(broadcasters.used_words, request)

    @app.get("/logograms", tags=["Streams"])
    async def logograms_stream(request: Request) -> StreamingResponse:
        return event_stream(broadcasters.logograms, request, replay.logograms.to_slice())

    @app.get("/test/chat", tags=["Test"])
    async def test_chat_stream(request: Request) -> StreamingResponse:
        return event_stream(broadcasters.test_messages, request, replay.messages.to_slice())

    @app.get("/test/generations", tags=["Test"])
    async def test_generations_stream(request: Request) -> StreamingResponse:
        return event_stream(broadcasters.test_generations, request, replay.generations.to_slice())

    return app


def load_test_data(chats_path: Optional[str], generations_path: Optional[str]):
    """Read exported snapshots for the test feed. Missing paths yield empty lists."""
    messages = load_messages(chats_path) if chats_path else []
    generations = load_generations(generations_path) if generations_path else []
    return messages, generations
