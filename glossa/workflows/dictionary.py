"""
Dictionary workflows: detecting which dictionary words a message uses and
folding a dictionary agent's updates back into a generation.
"""

import json
import logging
import re
from typing import TYPE_CHECKING, Iterable, List, Type, TypeVar

from pydantic import BaseModel, ValidationError

from glossa.api.models import (
    DictionaryEntryUpdate,
    DictionaryUpdateResponse,
    UsedWords,
    WordDetectionResponse,
)
from glossa.communication.agent_registry import AgentRegistry, ChatClient
from glossa.communication.chat_hub import ChatHub
from glossa.communication.commands import await_reply, build_command, reset_targets, send_commands
from glossa.communication.errors import ExternalServiceError
from glossa.communication.message_types import (
    Command,
    Dictionary,
    DictionaryEntry,
    Generation,
    Layer,
    dictionary_to_json,
    dictionary_to_string,
    transcript_to_string,
)
from glossa.workflows import prompts

if TYPE_CHECKING:
    from glossa.api.broadcaster import Broadcaster
    from glossa.config import ServerConfig

logger = logging.getLogger(__name__)

WORD_PATTERN = re.compile(r"[\w']+")

EXTRACT_WITH_REGEX = "regex"
EXTRACT_WITH_AGENT = "agent"

ResponseT = TypeVar("ResponseT", bound=BaseModel)


def find_used_words(dictionary: Iterable[str], text: str) -> List[str]:
    """Dictionary words appearing in ``text``, case-insensitive, in first-seen order."""
    lookup = {word.lower(): word for word in dictionary}
    found: List[str] = []
    seen = set()
    for match in WORD_PATTERN.finditer(text):
        key = match.group(0).lower()
        if key in lookup and key not in seen:
            seen.add(key)
            found.append(lookup[key])
    return found


def apply_dictionary_updates(dictionary: Dictionary, updates: Iterable[DictionaryEntryUpdate]) -> Dictionary:
    """Return a new dictionary with updates applied. Logograms of kept words survive."""
    updated = {word: DictionaryEntry(**vars(entry)) for word, entry in dictionary.items()}
    for update in updates:
        if update.remove:
            if updated.pop(update.word, None) is None:
                logger.warning(f"Asked to remove {update.word!r}, which is not in the dictionary")
            continue
        existing = updated.get(update.word)
        updated[update.word] = DictionaryEntry(
            word=update.word,
            definition=update.definition,
            logogram=existing.logogram if existing else "",
        )
    return updated


class DictionaryWorkflow:
    """Word detection and dictionary updates driven through system agents."""

    def __init__(
        self,
        config: "ServerConfig",
        registry: AgentRegistry,
        hub: ChatHub,
        used_words: "Broadcaster",
    ):
        self.config = config
        self.registry = registry
        self.hub = hub
        self.used_words_topic = used_words
        self.command = build_command(config.name)

    async def used_words(self, dictionary: Dictionary, text: str) -> List[str]:
        """Detect dictionary words in ``text`` and publish them on the words topic."""
        if self.config.dictionary_extraction == EXTRACT_WITH_AGENT:
            words = await self._detect_with_agent(dictionary, text)
        else:
            words = find_used_words(dictionary, text)
        self.used_words_topic.broadcast(UsedWords(words=words))
        return words

    async def _detect_with_agent(self, dictionary: Dictionary, text: str) -> List[str]:
        agent = self.registry.get(self.config.word_detector_agent)
        await self._send(
            [agent],
            self.command(Command.LATCH),
            self.command(
                Command.APPEND_INSTRUCTIONS,
                prompts.WORD_DETECTION_INSTRUCTIONS.format(dictionary=dictionary_to_string(dictionary)),
            ),
            self.command(Command.UNLATCH),
        )
        response = await self._request(
            agent, Command.REQUEST_DICTIONARY_WORD_DETECTION, text, WordDetectionResponse
        )
        await self._send([agent], *reset_targets(self.command))
        return response.words

    async def update(self, generation: Generation) -> Dictionary:
        """Ask the dictionary agent for updates based on the dictionary layer's transcript."""
        logger.info("Initiating dictionary updates...")
        agent = self.registry.get(self.config.dictionary_agent)
        current = json.dumps(dictionary_to_json(generation.dictionary))

        await self._send(
            [agent],
            self.command(Command.LATCH),
            self.command(
                Command.APPEND_INSTRUCTIONS,
                prompts.DICTIONARY_UPDATE_INSTRUCTIONS.format(dictionary=current),
            ),
            self.command(Command.UNLATCH),
        )
        response = await self._request(
            agent,
            Command.REQUEST_JSON_DICTIONARY_UPDATE,
            transcript_to_string(generation.transcript[Layer.DICTIONARY]),
            DictionaryUpdateResponse,
        )
        await self._send([agent], *reset_targets(self.command))

        logger.info(f"Applying {len(response.entries)} dictionary updates")
        return apply_dictionary_updates(generation.dictionary, response.entries)

    async def _send(self, clients: List[ChatClient], *targets) -> None:
        await send_commands(
            self.hub.channels.to_clients, clients, *targets, delay=self.config.command_delay
        )

    async def _request(
        self, agent: ChatClient, command: Command, content: str, schema: Type[ResponseT]
    ) -> ResponseT:
        channel = await self.hub.send_with_channel(self.command(command, content)(agent))
        reply = await await_reply(channel, self.config.system_reply_timeout, agent.name)
        try:
            return schema.model_validate_json(reply.text)
        except ValidationError as e:
            raise ExternalServiceError(
                f"{agent.name} answered {command.name} with invalid JSON: {e}"
            ) from e
