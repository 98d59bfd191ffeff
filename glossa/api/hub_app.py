"""
WebSocket endpoint agents connect to.

Each connection is wrapped in a WebSocketStream and handed to the chat hub,
which owns it until the agent disconnects.
"""

import logging

from fastapi import FastAPI, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError

from glossa import __version__
from glossa.api.models import ChatFrame
from glossa.communication.chat_hub import ChatHub, StreamClosed
from glossa.communication.errors import ProtocolError, TransportError
from glossa.communication.message_types import Message

logger = logging.getLogger(__name__)


class WebSocketStream:
    """AgentStream over a FastAPI websocket carrying ChatFrame JSON."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        client = websocket.client
        self.remote = f"{client.host}:{client.port}" if client else "unknown"

    async def receive(self) -> Message:
        try:
            raw = await self.websocket.receive_text()
        except WebSocketDisconnect:
            raise StreamClosed(self.remote)
        except RuntimeError as e:
            # raised by starlette once the socket is already closed
            raise TransportError(f"read from {self.remote} failed: {e}") from e

        try:
            frame = ChatFrame.model_validate_json(raw)
        except ValidationError as e:
            raise ProtocolError(f"malformed frame from {self.remote}: {e}") from e
        return frame.to_message()

    async def send(self, message: Message) -> None:
        try:
            await self.websocket.send_text(ChatFrame.from_message(message).model_dump_json())
        except (WebSocketDisconnect, RuntimeError) as e:
            raise TransportError(f"write to {self.remote} failed: {e}") from e


def create_hub_app(hub: ChatHub) -> FastAPI:
    """Build the application serving ``/chat`` for agents."""
    app = FastAPI(title="Glossa chat hub", version=__version__)
    app.state.hub = hub

    @app.websocket("/chat")
    async def chat(websocket: WebSocket) -> None:
        await websocket.accept()
        stream = WebSocketStream(websocket)
        logger.debug(f"Agent stream opened from {stream.remote}")
        try:
            await hub.serve_stream(stream)
        except ProtocolError as e:
            logger.warning(f"Rejected agent from {stream.remote}: {e}")
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=str(e))

    return app
