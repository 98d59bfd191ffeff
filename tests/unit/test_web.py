"""
Unit tests for the web and hub applications.
"""

import asyncio
import json
import time
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from starlette.requests import Request
from starlette.websockets import WebSocketDisconnect

from glossa.api.hub_app import create_hub_app
from glossa.api.models import ChatFrame
from glossa.api.web import create_web_app, current_time, load_test_data
from glossa.communication.message_types import Layer, Message
from glossa.memory.persistence import export_snapshots
from glossa.server import ConlangServer


def wait_until(condition, timeout: float = 2.0) -> bool:
    """Poll ``condition`` while the app runs in the test client's thread."""
    deadline = time.time() + timeout
    while time.time() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return condition()


def route_endpoint(app, path: str):
    return next(route.endpoint for route in app.routes if getattr(route, "path", None) == path)


def stream_request(path: str) -> Request:
    return Request({
        "type": "http",
        "method": "GET",
        "path": path,
        "headers": [],
        "query_string": b"",
        "client": ("127.0.0.1", 50000),
    })


def event_data(frame: str) -> dict:
    assert frame.startswith("data: ") and frame.endswith("\n\n")
    return json.loads(frame[len("data: "):])


@pytest.fixture
def server(server_config, seed_generation):
    return ConlangServer(server_config(), seed=seed_generation)


@pytest.mark.unit
@pytest.mark.web
class TestWebApp:
    """Tests for the plain JSON endpoints."""

    def test_root_lists_streams(self, server):
        client = TestClient(create_web_app(server))
        response = client.get("/")

        assert response.status_code == 200
        assert "/generations" in response.json()["streams"]

    def test_health(self, server):
        client = TestClient(create_web_app(server))
        data = client.get("/health").json()

        assert data["status"] == "healthy"
        assert data["listening"] is True
        assert data["connected_agents"] == 0
        assert data["generations"] == 0
        assert data["current_job"] is None

    def test_current_time_layout(self):
        now = datetime(2006, 1, 2, 15, 4, 5, tzinfo=timezone.utc)
        assert current_time(now) == "Mon Jan  2 15:04:05 UTC 2006"

    def test_load_test_data(self, tmp_path, seed_generation):
        paths = export_snapshots(tmp_path, [], [seed_generation])
        messages, generations = load_test_data(str(paths["chats"]), str(paths["generations"]))

        assert messages == []
        assert len(generations) == 1
        assert load_test_data(None, None) == ([], [])


@pytest.mark.unit
@pytest.mark.hub
class TestHubApp:
    """Tests for the agent websocket endpoint."""

    def test_agent_registers_and_frames_are_routed(self, server):
        client = TestClient(create_hub_app(server.hub))

        with client.websocket_connect("/chat") as websocket:
            websocket.send_text(ChatFrame(sender="AGENT_A", content="echo", layer=1).model_dump_json())
            assert wait_until(lambda: "AGENT_A" in server.registry)
            assert server.registry.get("AGENT_A").model == "echo"

            websocket.send_text(ChatFrame(sender="AGENT_A", content="toki", layer=1).model_dump_json())
            assert wait_until(lambda: server.channels.inbound.qsize() == 1)

        assert wait_until(lambda: server.registry.total == 0)
        message = server.channels.inbound.get_nowait()
        assert message.sender == "AGENT_A"
        assert message.text == "toki"

    def test_reserved_name_is_refused(self, server):
        client = TestClient(create_hub_app(server.hub))

        with client.websocket_connect("/chat") as websocket:
            websocket.send_text(ChatFrame(sender="SERVER", content="echo", layer=0).model_dump_json())
            with pytest.raises(WebSocketDisconnect) as excinfo:
                websocket.receive_text()

        assert excinfo.value.code == 1008
        assert server.registry.total == 0


@pytest.mark.unit
@pytest.mark.web
class TestEventStreams:
    """Tests for the SSE routes."""

    @pytest.mark.asyncio
    async def test_chat_stream_headers(self, server):
        app = create_web_app(server)
        response = await route_endpoint(app, "/chat")(stream_request("/chat"))

        assert response.headers["content-type"] == "text/event-stream"
        assert response.headers["cache-control"] == "no-cache"
        assert response.headers["connection"] == "keep-alive"
        assert response.headers["access-control-allow-origin"] == "*"
        await response.body_iterator.aclose()

    @pytest.mark.asyncio
    async def test_chat_stream_replays_recent_then_goes_live(self, server):
        for text in ("m1", "m2", "m3"):
            server.replay.messages.enqueue(Message(sender="AGENT_A", text=text, layer=Layer.GRAMMAR))
        app = create_web_app(server)
        response = await route_endpoint(app, "/chat")(stream_request("/chat"))
        events = response.body_iterator

        replayed = [event_data(await events.__anext__()) for _ in range(3)]
        assert [event["text"] for event in replayed] == ["m1", "m2", "m3"]

        server.broadcasters.messages.broadcast(Message(sender="AGENT_B", text="m4", layer=Layer.GRAMMAR))
        live = event_data(await asyncio.wait_for(events.__anext__(), 1.0))
        assert live["text"] == "m4"

        await events.aclose()
        assert server.broadcasters.messages.subscriber_count == 0
