"""
Pytest configuration and shared fixtures for Glossa tests.
"""

import pytest
import os
import asyncio
from typing import Callable, List, Optional

# Add the project root to path for imports
import sys
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from glossa.communication.agent_registry import AgentRegistry, ChatClient
from glossa.communication.chat_hub import ChatHub, ServerChannels, StreamClosed
from glossa.communication.errors import TransportError
from glossa.communication.message_types import (
    DictionaryEntry,
    Generation,
    Layer,
    Message,
    WORKING_LAYERS,
)
from glossa.config import ServerConfig


class FakeStream:
    """
    In-memory AgentStream.

    Frames the "agent" sends are fed with ``push``; frames the hub sends are
    recorded in ``sent`` and passed to ``on_send`` if one is set.
    """

    def __init__(self, remote: str = "test", on_send: Optional[Callable[[Message], None]] = None):
        self.remote = remote
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.sent: List[Message] = []
        self.on_send = on_send
        self.fail_sends = False

    def push(self, message: Message) -> None:
        self.incoming.put_nowait(message)

    def close(self) -> None:
        self.incoming.put_nowait(None)

    async def receive(self) -> Message:
        item = await self.incoming.get()
        if item is None:
            raise StreamClosed(self.remote)
        if isinstance(item, Exception):
            raise item
        return item

    async def send(self, message: Message) -> None:
        if self.fail_sends:
            raise TransportError(f"{self.remote} is gone")
        self.sent.append(message)
        if self.on_send is not None:
            self.on_send(message)


def make_client(name: str, layer: Layer = Layer.PHONETICS, on_send=None) -> ChatClient:
    return ChatClient(name=name, model="test-model", layer=layer, stream=FakeStream(name, on_send))


@pytest.fixture
def fake_stream():
    return FakeStream


@pytest.fixture
def client_factory():
    return make_client


@pytest.fixture
def registry():
    return AgentRegistry()


@pytest.fixture
def channels():
    return ServerChannels.create(16)


@pytest.fixture
def hub(registry, channels):
    return ChatHub("SERVER", registry, channels)


@pytest.fixture
def server_config(tmp_path):
    """Fast config writing into a temporary outputs directory."""
    def build(**overrides) -> ServerConfig:
        settings = {
            "max_exchanges": 2,
            "max_generations": 1,
            "target_agents": 1,
            "quorum_poll_interval": 0.01,
            "system_reply_timeout": 2.0,
            "logogram_pause": 0.0,
            "outputs_dir": str(tmp_path / "outputs"),
        }
        settings.update(overrides)
        return ServerConfig().with_overrides(settings).validate()

    return build


@pytest.fixture
def seed_generation():
    """A small seed generation with every working specification set."""
    generation = Generation()
    for layer in WORKING_LAYERS:
        generation.specifications[layer] = f"Initial {layer} specification."
    generation.specifications[Layer.SYSTEM] = ""
    generation.dictionary = {
        "toki": DictionaryEntry(word="toki", definition="speak, language"),
        "pona": DictionaryEntry(word="pona", definition="good"),
    }
    return generation


# Pytest markers
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, no external dependencies)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (several components wired together)"
    )
    config.addinivalue_line(
        "markers", "hub: Tests for the chat hub and agent registry"
    )
    config.addinivalue_line(
        "markers", "router: Tests for message routing"
    )
    config.addinivalue_line(
        "markers", "engine: Tests for the evolution engine and workflows"
    )
    config.addinivalue_line(
        "markers", "web: Tests for the web surface"
    )
    config.addinivalue_line(
        "markers", "agents: Tests for the agent client"
    )
    config.addinivalue_line(
        "markers", "providers: Tests for LLM providers"
    )
