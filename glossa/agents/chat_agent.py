"""
Conversational agent client.

A ChatAgent connects to the chat hub over a websocket, announces itself with
an identity frame and then reacts to every frame it receives. Commands change
its state (instructions, memory, latch, response type) and content messages
are answered by its language model.

The agent starts latched: it only talks once the server unlatches it, and any
model reply that completes after it has been latched again is discarded.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Type

import websockets
from pydantic import BaseModel, ValidationError

from glossa.agents.config import AgentConfig
from glossa.api.models import (
    ChatFrame,
    DictionaryUpdateResponse,
    LogogramCritiqueResponse,
    LogogramIterationResponse,
    WordDetectionResponse,
)
from glossa.communication.errors import ExternalServiceError, ProtocolError, TransportError
from glossa.communication.message_types import ChatRole, Command, Message
from glossa.llm.base_provider import BaseLLMProvider, LLMRequest, ProviderError
from glossa.memory.message_store import MessageStore

logger = logging.getLogger(__name__)

TYPED_REQUESTS: Dict[Command, Type[BaseModel]] = {
    Command.REQUEST_JSON_DICTIONARY_UPDATE: DictionaryUpdateResponse,
    Command.REQUEST_LOGOGRAM_ITERATION: LogogramIterationResponse,
    Command.REQUEST_LOGOGRAM_CRITIQUE: LogogramCritiqueResponse,
    Command.REQUEST_DICTIONARY_WORD_DETECTION: WordDetectionResponse,
}

# Commands after which in-flight model work no longer applies
INTERRUPTING_COMMANDS = (Command.LATCH, Command.CLEAR_MEMORY, Command.RESET_INSTRUCTIONS)


class ChatAgent:
    """
    One agent taking part in the conversation.

    Args:
        config: Agent configuration
        provider: Language model backend
        memory: Conversation memory, a fresh store when omitted
    """

    def __init__(self, config: AgentConfig, provider: BaseLLMProvider,
                 memory: Optional[MessageStore] = None):
        self.config = config
        self.name = config.name
        self.provider = provider
        self.memory = memory or MessageStore()

        self.instructions = config.system_instructions()
        self.latched = True
        self.json_mode = False

        self.outbox: asyncio.Queue = asyncio.Queue()
        self._pending: List[asyncio.Task] = []

    # ========================================================================
    # Connection
    # ========================================================================

    async def run(self) -> None:
        """
        Connect to the hub and serve until the connection closes.

        Raises:
            TransportError: If the hub cannot be reached or the connection fails
        """
        url = self.config.router_url
        logger.info(f"{self.name} connecting to {url}")
        try:
            async with websockets.connect(url) as websocket:
                await websocket.send(self.identity_frame().model_dump_json())
                logger.info(f"{self.name} is online on layer {self.config.layer}")
                writer = asyncio.ensure_future(self._write(websocket))
                try:
                    await self._read(websocket)
                finally:
                    writer.cancel()
                    self.cancel_pending()
        except (OSError, websockets.WebSocketException) as e:
            raise TransportError(f"{self.name} lost the hub connection: {e}") from e

    def identity_frame(self) -> ChatFrame:
        return ChatFrame(
            sender=self.name,
            content=self.config.model_label,
            layer=int(self.config.layer),
        )

    async def _read(self, websocket) -> None:
        async for raw in websocket:
            try:
                message = ChatFrame.model_validate_json(raw).to_message()
            except (ValidationError, ProtocolError) as e:
                logger.warning(f"{self.name} ignoring malformed frame: {e}")
                continue
            await self.handle(message)

    async def _write(self, websocket) -> None:
        while True:
            message = await self.outbox.get()
            await websocket.send(ChatFrame.from_message(message).model_dump_json())

    # ========================================================================
    # Message handling
    # ========================================================================

    async def handle(self, message: Message) -> None:
        """React to one message from the hub."""
        command = message.command
        if command in INTERRUPTING_COMMANDS:
            self.cancel_pending()

        if command == Command.APPEND_INSTRUCTIONS:
            self.instructions = f"{self.instructions}\n{message.text}"
        elif command == Command.SET_INSTRUCTIONS:
            self.instructions = message.text
        elif command == Command.RESET_INSTRUCTIONS:
            self.instructions = self.config.system_instructions()
        elif command == Command.CLEAR_MEMORY:
            self.memory.clear()
        elif command == Command.LATCH:
            self.latched = True
        elif command == Command.UNLATCH:
            if not self.latched:
                logger.debug(f"{self.name} already unlatched, doing nothing")
            self.latched = False
        elif command == Command.SET_RESPONSE_TYPE_TO_JSON:
            self.json_mode = True
        elif command == Command.SET_RESPONSE_TYPE_TO_TEXT:
            self.json_mode = False
        elif command == Command.SEND_INITIAL_MESSAGE:
            await self.send_initial_message(message)
        elif command in TYPED_REQUESTS:
            self._start(self.typed_request(message, TYPED_REQUESTS[command]))
        else:
            self.remember(message, ChatRole.USER)
            if self.latched:
                logger.debug(f"{self.name} is latched, not answering {message.sender}")
                return
            self._start(self.respond(message))

    async def send_initial_message(self, message: Message) -> None:
        """Open the conversation with the given text, unless latched."""
        if self.latched:
            logger.debug(f"{self.name} must be unlatched before sending an initial message")
            return
        outgoing = self.new_message(self.reply_target(message), message.text)
        self.remember(outgoing, ChatRole.MODEL)
        await self.outbox.put(outgoing)
        logger.info(f"{self.name} sent its initial message")

    async def respond(self, message: Message) -> None:
        """Answer the conversation so far with the model and send the reply."""
        request = self.build_request()
        if self.json_mode:
            request.extra_params["response_format"] = {"type": "json_object"}

        try:
            response = await asyncio.to_thread(self.provider.complete, request)
        except ProviderError as e:
            error = ExternalServiceError(f"{self.name} model request failed: {e}", fatal=False)
            logger.error(f"{error}")
            return

        if self.latched:
            logger.debug(f"{self.name} latched while thinking, discarding reply")
            return
        if self.config.reply_delay:
            await asyncio.sleep(self.config.reply_delay)

        outgoing = self.new_message(self.reply_target(message), response.content)
        self.remember(outgoing, ChatRole.MODEL)
        await self.outbox.put(outgoing)

    async def typed_request(self, message: Message, schema: Type[BaseModel]) -> None:
        """Answer a structured request with JSON matching ``schema``, addressed to its sender."""
        self.remember(message, ChatRole.USER)
        request = self.build_request()
        try:
            result = await asyncio.to_thread(self.provider.complete_typed, request, schema)
        except ProviderError as e:
            error = ExternalServiceError(f"{self.name} {schema.__name__} request failed: {e}", fatal=False)
            logger.error(f"{error}")
            return

        outgoing = self.new_message(message.sender, result.model_dump_json())
        self.remember(outgoing, ChatRole.MODEL)
        await self.outbox.put(outgoing)
        logger.debug(f"{self.name} answered {schema.__name__} request ({len(outgoing.text)} chars)")

    # ========================================================================
    # Helpers
    # ========================================================================

    def build_request(self) -> LLMRequest:
        return LLMRequest(
            system_prompt=self.instructions,
            history=self.memory.retrieve(self.name),
            temperature=self.config.model.temperature,
            max_tokens=self.config.model.max_tokens,
            agent_id=self.name,
            model=self.config.model.model or None,
        )

    def reply_target(self, message: Message) -> str:
        """First configured peer, else whoever spoke."""
        return self.config.peers[0] if self.config.peers else message.sender

    def new_message(self, receiver: str, text: str) -> Message:
        return Message(sender=self.name, receiver=receiver, text=text, layer=self.config.layer)

    def remember(self, message: Message, role: ChatRole) -> Message:
        return self.memory.save(Message(
            sender=message.sender,
            receiver=message.receiver,
            text=message.text,
            layer=message.layer,
            role=role,
            inserted_by=self.name,
        ))

    def cancel_pending(self) -> None:
        for task in self._pending:
            task.cancel()
        self._pending.clear()

    def _start(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._pending.append(task)
        task.add_done_callback(self._forget)
        return task

    def _forget(self, task: asyncio.Task) -> None:
        if task in self._pending:
            self._pending.remove(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"{self.name} task failed: {task.exception()!r}")

    async def wait_idle(self) -> None:
        """Wait for in-flight model work to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
