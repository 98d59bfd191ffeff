"""
Unit tests for layers, commands, messages and generations.
"""

import copy

import pytest

from glossa.api.models import ChatFrame
from glossa.communication.errors import ProtocolError
from glossa.communication.message_types import (
    ChatRole,
    Command,
    DictionaryEntry,
    Generation,
    Layer,
    Message,
    transcript_to_string,
)
from glossa.workflows import prompts


@pytest.mark.unit
class TestEnumerations:
    """Tests for Layer and Command wire handling."""

    def test_layer_names_are_lowercase(self):
        assert str(Layer.PHONETICS) == "phonetics"
        assert str(Layer.SYSTEM) == "system"

    def test_layer_from_wire(self):
        assert Layer.from_wire(3) is Layer.DICTIONARY

    def test_unknown_layer(self):
        with pytest.raises(ProtocolError):
            Layer.from_wire(42)
        with pytest.raises(ProtocolError):
            Layer.from_name("syntax")

    def test_unknown_command(self):
        with pytest.raises(ProtocolError):
            Command.from_wire(99)

    def test_command_wire_values(self):
        assert Command.UNLATCH == -10
        assert Command.CLEAR_MEMORY == -20
        assert Command.REQUEST_DICTIONARY_WORD_DETECTION == 25


@pytest.mark.unit
class TestMessage:
    """Tests for Message serialization."""

    def test_to_dict_omits_empty_fields(self):
        data = Message(sender="AGENT_A", text="hi", layer=Layer.GRAMMAR, timestamp=0).to_dict()

        assert data == {"text": "hi", "sender": "AGENT_A", "layer": "grammar", "command": 0}

    def test_dict_round_trip_keeps_inserter_and_role(self):
        message = Message(
            sender="AGENT_A",
            receiver="AGENT_B",
            text="toki",
            layer=Layer.PHONETICS,
            role=ChatRole.MODEL,
            id=7,
            inserted_by="SERVER",
        )
        data = message.to_dict()

        assert data["insertedBy"] == "SERVER"
        assert Message.from_dict(data) == message

    def test_chat_frame_conversion(self):
        message = Message(sender="SERVER", receiver="A", text="x", layer=Layer.GRAMMAR, command=Command.LATCH)
        frame = ChatFrame.from_message(message)

        assert frame.layer == 2
        assert frame.command == 10
        back = frame.to_message()
        assert (back.sender, back.receiver, back.text, back.layer, back.command) == (
            "SERVER", "A", "x", Layer.GRAMMAR, Command.LATCH
        )

    def test_chat_frame_bad_layer(self):
        with pytest.raises(ProtocolError):
            ChatFrame(sender="A", layer=17).to_message()


@pytest.mark.unit
class TestGeneration:
    """Tests for Generation copies and serialization."""

    def test_copy_is_independent(self, seed_generation):
        seed_generation.transcript[Layer.PHONETICS].append(Message(text="hi"))
        clone = seed_generation.copy()

        clone.transcript[Layer.PHONETICS].append(Message(text="more"))
        clone.specifications[Layer.GRAMMAR] = "changed"
        clone.dictionary["toki"].definition = "changed"

        assert len(seed_generation.transcript[Layer.PHONETICS]) == 1
        assert seed_generation.specifications[Layer.GRAMMAR] == "Initial grammar specification."
        assert seed_generation.dictionary["toki"].definition == "speak, language"

    def test_deepcopy_uses_value_copy(self, seed_generation):
        clone = copy.deepcopy(seed_generation)
        assert clone.specifications == seed_generation.specifications
        assert clone is not seed_generation

    def test_shell_clears_transcript(self, seed_generation):
        seed_generation.transcript[Layer.GRAMMAR].append(Message(text="hi"))
        shell = seed_generation.shell()

        assert all(not messages for messages in shell.transcript.values())
        assert shell.specifications == seed_generation.specifications

    def test_dict_round_trip(self, seed_generation):
        seed_generation.transcript[Layer.GRAMMAR].append(
            Message(sender="A", text="li", layer=Layer.GRAMMAR, timestamp=1.0)
        )
        seed_generation.logography["toki"] = "<svg/>"

        restored = Generation.from_dict(seed_generation.to_dict())

        assert restored.specifications == seed_generation.specifications
        assert restored.dictionary == seed_generation.dictionary
        assert restored.logography == {"toki": "<svg/>"}
        assert restored.transcript[Layer.GRAMMAR][0].text == "li"

    def test_dictionary_entry_omits_empty_logogram(self):
        assert DictionaryEntry("mi", "me").to_dict() == {"word": "mi", "definition": "me"}


@pytest.mark.unit
class TestPrompts:
    """Tests for prompt rendering."""

    def test_transcript_block(self):
        text = transcript_to_string([Message(sender="A", text="toki"), Message(sender="B", text="pona")])

        assert text.startswith("=== BEGIN CHAT LOG ===\n")
        assert "A: toki\nB: pona\n" in text
        assert text.endswith("=== END CHAT LOG ===\n")

    def test_initial_instructions_include_lower_layers_in_order(self, seed_generation):
        text = prompts.initial_instructions(
            Layer.GRAMMAR, seed_generation.specifications, seed_generation.dictionary
        )

        phonetics = text.index("Initial phonetics specification.")
        grammar = text.index("Initial grammar specification.")
        assert phonetics < grammar
        assert "Initial dictionary specification." not in text
        assert "toki: speak, language\n" in text

    def test_dictionary_layer_gets_extra_guidance(self, seed_generation):
        text = prompts.initial_instructions(
            Layer.DICTIONARY, seed_generation.specifications, seed_generation.dictionary
        )
        assert prompts.LAYER_SPECIFIC_INSTRUCTIONS[Layer.DICTIONARY] in text

    def test_kickoff_mentions_layer(self):
        assert "grammar" in prompts.kickoff_message(Layer.GRAMMAR)
