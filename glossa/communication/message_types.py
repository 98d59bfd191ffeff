"""
Message types and structures for the Glossa communication system.

Defines the layer and command enumerations, the immutable Message dataclass
exchanged between agents and the server, dictionary entries and the
Generation bundle the evolution engine produces.
"""

import time
from dataclasses import dataclass, field, replace
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional

from glossa.communication.errors import ProtocolError


class Layer(IntEnum):
    """Tiers of the language stack, lowest first."""
    SYSTEM = 0
    PHONETICS = 1
    GRAMMAR = 2
    DICTIONARY = 3
    LOGOGRAPHY = 4
    CHATTING = 5

    def __str__(self) -> str:
        return self.name.lower()

    @classmethod
    def from_wire(cls, value: int) -> "Layer":
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            raise ProtocolError(f"unknown layer {value!r}")

    @classmethod
    def from_name(cls, name: str) -> "Layer":
        try:
            return cls[name.upper()]
        except KeyError:
            raise ProtocolError(f"unknown layer {name!r}")


# Layers the evolution engine works on, in iteration order.
WORKING_LAYERS = (Layer.PHONETICS, Layer.GRAMMAR, Layer.DICTIONARY, Layer.LOGOGRAPHY)


class Command(IntEnum):
    """State transitions the server demands of an agent."""
    NO_COMMAND = 0
    APPEND_INSTRUCTIONS = 2
    SET_INSTRUCTIONS = 3
    SEND_INITIAL_MESSAGE = 4
    RESET_INSTRUCTIONS = 5
    LATCH = 10
    UNLATCH = -10
    CLEAR_MEMORY = -20
    SET_RESPONSE_TYPE_TO_JSON = 20
    SET_RESPONSE_TYPE_TO_TEXT = 21
    REQUEST_JSON_DICTIONARY_UPDATE = 22
    REQUEST_LOGOGRAM_ITERATION = 23
    REQUEST_LOGOGRAM_CRITIQUE = 24
    REQUEST_DICTIONARY_WORD_DETECTION = 25

    @classmethod
    def from_wire(cls, value: int) -> "Command":
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            raise ProtocolError(f"unknown command {value!r}")


class ChatRole(Enum):
    """Who authored a stored message from the point of view of its owner."""
    USER = "user"
    MODEL = "model"


@dataclass(frozen=True)
class Message:
    """A single frame of conversation or control traffic. Never mutated."""
    sender: str = ""
    receiver: str = ""
    text: str = ""
    layer: Layer = Layer.SYSTEM
    command: Command = Command.NO_COMMAND
    role: Optional[ChatRole] = None
    timestamp: float = field(default_factory=time.time)
    id: int = 0
    inserted_by: str = ""

    @property
    def is_command(self) -> bool:
        return self.command != Command.NO_COMMAND

    def to_dict(self) -> Dict[str, Any]:
        """JSON form: lowercase keys, empty fields omitted, layer by name."""
        data: Dict[str, Any] = {}
        if self.role is not None:
            data["role"] = self.role.value
        if self.text:
            data["text"] = self.text
        if self.timestamp:
            data["timestamp"] = self.timestamp
        if self.id:
            data["id"] = self.id
        if self.inserted_by:
            data["insertedBy"] = self.inserted_by
        if self.sender:
            data["sender"] = self.sender
        if self.receiver:
            data["receiver"] = self.receiver
        data["layer"] = str(self.layer)
        data["command"] = int(self.command)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        role = data.get("role")
        return cls(
            sender=data.get("sender", ""),
            receiver=data.get("receiver", ""),
            text=data.get("text", ""),
            layer=Layer.from_name(data.get("layer", "system")),
            command=Command.from_wire(data.get("command", 0)),
            role=ChatRole(role) if role else None,
            timestamp=data.get("timestamp", 0.0),
            id=data.get("id", 0),
            inserted_by=data.get("insertedBy", ""),
        )


@dataclass
class DictionaryEntry:
    """A word of the language with its definition and optional logogram."""
    word: str
    definition: str = ""
    logogram: str = ""
    remove: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = {"word": self.word, "definition": self.definition}
        if self.logogram:
            data["logogram"] = self.logogram
        if self.remove:
            data["remove"] = True
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DictionaryEntry":
        return cls(
            word=data["word"],
            definition=data.get("definition", ""),
            logogram=data.get("logogram", ""),
            remove=bool(data.get("remove", False)),
        )


Transcript = Dict[Layer, List[Message]]
Specifications = Dict[Layer, str]
Dictionary = Dict[str, DictionaryEntry]
Logography = Dict[str, str]


def new_transcript() -> Transcript:
    return {layer: [] for layer in Layer}


@dataclass
class Generation:
    """
    One complete pass of the evolution engine.

    Attributes:
        transcript: Exchanged messages per layer
        specifications: Specification text per layer
        dictionary: Words of the language keyed by word
        logography: SVG source per word
    """
    transcript: Transcript = field(default_factory=new_transcript)
    specifications: Specifications = field(default_factory=dict)
    dictionary: Dictionary = field(default_factory=dict)
    logography: Logography = field(default_factory=dict)

    def copy(self) -> "Generation":
        """Value copy: maps and lists are new, messages are shared."""
        return Generation(
            transcript={layer: list(messages) for layer, messages in self.transcript.items()},
            specifications=dict(self.specifications),
            dictionary={word: replace(entry) for word, entry in self.dictionary.items()},
            logography=dict(self.logography),
        )

    def shell(self) -> "Generation":
        """Empty transcript, everything else carried over."""
        shell = self.copy()
        shell.transcript = new_transcript()
        return shell

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transcript": {
                str(layer): [m.to_dict() for m in messages]
                for layer, messages in self.transcript.items()
            },
            "specifications": {str(layer): text for layer, text in self.specifications.items()},
            "dictionary": {word: entry.to_dict() for word, entry in self.dictionary.items()},
            "logography": dict(self.logography),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Generation":
        transcript = new_transcript()
        for name, messages in (data.get("transcript") or {}).items():
            transcript[Layer.from_name(name)] = [Message.from_dict(m) for m in messages]
        return cls(
            transcript=transcript,
            specifications={
                Layer.from_name(name): text
                for name, text in (data.get("specifications") or {}).items()
            },
            dictionary={
                word: DictionaryEntry.from_dict(entry)
                for word, entry in (data.get("dictionary") or {}).items()
            },
            logography=dict(data.get("logography") or {}),
        )

    def __deepcopy__(self, memo):
        return self.copy()


def transcript_to_string(messages: List[Message]) -> str:
    """Render messages as a chat log block for a system agent."""
    lines = ["=== BEGIN CHAT LOG ===\n"]
    for message in messages:
        lines.append(f"{message.sender}: {message.text}\n")
    lines.append("=== END CHAT LOG ===\n")
    return "".join(lines)


def dictionary_to_string(dictionary: Dictionary) -> str:
    return "".join(f"{word}: {entry.definition}\n" for word, entry in dictionary.items())


def dictionary_to_json(dictionary: Dictionary) -> List[Dict[str, Any]]:
    return [entry.to_dict() for entry in dictionary.values()]

