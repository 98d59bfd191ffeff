"""
Unit tests for dictionary word detection and updates.
"""

import asyncio

import pytest

from glossa.api.broadcaster import Broadcaster
from glossa.api.models import DictionaryEntryUpdate, UsedWords
from glossa.communication.errors import ExternalServiceError
from glossa.communication.message_types import Command, DictionaryEntry, Layer, Message
from glossa.workflows.dictionary import (
    DictionaryWorkflow,
    apply_dictionary_updates,
    find_used_words,
)


@pytest.mark.unit
@pytest.mark.engine
class TestFindUsedWords:
    """Tests for regex word detection."""

    def test_case_insensitive_first_seen_order(self):
        words = find_used_words(["toki", "pona", "mi"], "Pona! mi toki, toki PONA.")
        assert words == ["pona", "mi", "toki"]

    def test_ignores_substrings(self):
        assert find_used_words(["mi"], "minimal") == []

    def test_apostrophes_are_part_of_words(self):
        assert find_used_words(["o'o"], "o'o is here") == ["o'o"]


@pytest.mark.unit
@pytest.mark.engine
class TestApplyDictionaryUpdates:
    """Tests for folding dictionary updates."""

    def test_add_change_remove(self, seed_generation):
        seed_generation.dictionary["toki"].logogram = "<svg/>"
        updated = apply_dictionary_updates(seed_generation.dictionary, [
            DictionaryEntryUpdate(word="toki", definition="talk"),
            DictionaryEntryUpdate(word="pona", remove=True),
            DictionaryEntryUpdate(word="jan", definition="person"),
        ])

        assert set(updated) == {"toki", "jan"}
        assert updated["toki"].definition == "talk"
        assert updated["toki"].logogram == "<svg/>"
        assert seed_generation.dictionary["toki"].definition == "speak, language"

    def test_removing_unknown_word_is_harmless(self):
        dictionary = {"mi": DictionaryEntry("mi", "me")}
        updated = apply_dictionary_updates(dictionary, [DictionaryEntryUpdate(word="x", remove=True)])
        assert updated == dictionary


def answering_stream(hub, reply_text):
    """on_send hook that answers any typed request with ``reply_text``."""
    def on_send(message):
        if message.command in (Command.REQUEST_JSON_DICTIONARY_UPDATE, Command.REQUEST_DICTIONARY_WORD_DETECTION):
            hub.registry.get(message.receiver).stream.push(
                Message(sender=message.receiver, receiver="SERVER", text=reply_text, layer=Layer.SYSTEM)
            )
    return on_send


@pytest.mark.unit
@pytest.mark.engine
class TestDictionaryWorkflow:
    """Tests for agent-driven dictionary requests."""

    async def connect(self, hub, fake_stream, name, reply_text):
        stream = fake_stream(name, answering_stream(hub, reply_text))
        stream.push(Message(sender=name, text="test-model", layer=Layer.SYSTEM))
        task = asyncio.ensure_future(hub.serve_stream(stream))
        for _ in range(3):
            await asyncio.sleep(0)
        return stream, task

    @pytest.mark.asyncio
    async def test_update_applies_agent_entries(self, hub, server_config, fake_stream, seed_generation):
        config = server_config(command_delay=0.0)
        stream, task = await self.connect(
            hub, fake_stream, config.dictionary_agent,
            '{"entries": [{"word": "jan", "definition": "person"}]}',
        )
        dispatcher = asyncio.ensure_future(hub.dispatch())
        workflow = DictionaryWorkflow(config, hub.registry, hub, Broadcaster("words"))

        dictionary = await asyncio.wait_for(workflow.update(seed_generation), 2.0)

        assert dictionary["jan"].definition == "person"
        assert "toki" in dictionary
        commands = [m.command for m in stream.sent]
        assert commands == [
            Command.LATCH, Command.APPEND_INSTRUCTIONS, Command.UNLATCH,
            Command.REQUEST_JSON_DICTIONARY_UPDATE,
            Command.LATCH, Command.CLEAR_MEMORY, Command.RESET_INSTRUCTIONS,
        ]

        stream.close()
        dispatcher.cancel()
        await asyncio.gather(task, dispatcher, return_exceptions=True)

    @pytest.mark.asyncio
    async def test_invalid_reply(self, hub, server_config, fake_stream, seed_generation):
        config = server_config()
        stream, task = await self.connect(hub, fake_stream, config.dictionary_agent, "not json")
        dispatcher = asyncio.ensure_future(hub.dispatch())
        workflow = DictionaryWorkflow(config, hub.registry, hub, Broadcaster("words"))

        with pytest.raises(ExternalServiceError):
            await asyncio.wait_for(workflow.update(seed_generation), 2.0)

        stream.close()
        dispatcher.cancel()
        await asyncio.gather(task, dispatcher, return_exceptions=True)

    @pytest.mark.asyncio
    async def test_used_words_with_agent(self, hub, server_config, fake_stream, seed_generation):
        config = server_config(dictionary_extraction="agent")
        stream, task = await self.connect(hub, fake_stream, config.word_detector_agent, '{"words": ["pona"]}')
        dispatcher = asyncio.ensure_future(hub.dispatch())
        topic = Broadcaster("words")
        subscriber = topic.subscribe("test")
        workflow = DictionaryWorkflow(config, hub.registry, hub, topic)

        words = await asyncio.wait_for(workflow.used_words(seed_generation.dictionary, "pona"), 2.0)

        assert words == ["pona"]
        assert subscriber.queue.get_nowait() == UsedWords(words=["pona"])

        stream.close()
        dispatcher.cancel()
        await asyncio.gather(task, dispatcher, return_exceptions=True)

    @pytest.mark.asyncio
    async def test_used_words_with_regex(self, hub, server_config, seed_generation):
        topic = Broadcaster("words")
        subscriber = topic.subscribe("test")
        workflow = DictionaryWorkflow(server_config(), hub.registry, hub, topic)

        words = await workflow.used_words(seed_generation.dictionary, "toki pona")

        assert words == ["toki", "pona"]
        assert subscriber.queue.get_nowait().words == ["toki", "pona"]
