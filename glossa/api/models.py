"""
Pydantic models for the Glossa wire protocol, agent reply schemas and the
web API's JSON responses.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from glossa.communication.message_types import Command, Layer, Message


# ============================================================================
# Wire Protocol
# ============================================================================

class ChatFrame(BaseModel):
    """One websocket frame between an agent and the chat hub."""
    sender: str = Field("", description="Name of the sending agent")
    receiver: str = Field("", description="Addressee, empty for a layer-wide broadcast")
    content: str = Field("", description="Message text, or the model label on the first frame")
    layer: int = Field(0, description="Layer wire value")
    command: int = Field(0, description="Command wire value")

    def to_message(self) -> Message:
        """
        Raises:
            ProtocolError: Unknown layer or command value
        """
        return Message(
            sender=self.sender,
            receiver=self.receiver,
            text=self.content,
            layer=Layer.from_wire(self.layer),
            command=Command.from_wire(self.command),
        )

    @classmethod
    def from_message(cls, message: Message) -> "ChatFrame":
        return cls(
            sender=message.sender,
            receiver=message.receiver,
            content=message.text,
            layer=int(message.layer),
            command=int(message.command),
        )


# ============================================================================
# Agent Reply Schemas
# ============================================================================

class DictionaryEntryUpdate(BaseModel):
    word: str = Field(..., description="Dictionary entry word")
    definition: str = Field("", description="Dictionary entry definition")
    remove: bool = Field(False, description="Remove word")


class DictionaryUpdateResponse(BaseModel):
    """Reply to REQUEST_JSON_DICTIONARY_UPDATE."""
    entries: List[DictionaryEntryUpdate] = Field(default_factory=list, description="Dictionary entries")


class WordDetectionResponse(BaseModel):
    """Reply to REQUEST_DICTIONARY_WORD_DETECTION."""
    words: List[str] = Field(default_factory=list, description="Words in the dictionary from the text")


class LogogramIterationResponse(BaseModel):
    """Reply to REQUEST_LOGOGRAM_ITERATION."""
    name: str = Field("", description="Logogram name")
    svg: str = Field("", description="Logogram svg")
    response: str = Field("", description="Your response")
    stop: bool = Field(True, description="Indicates if you want to end the conversation")


class LogogramCritiqueResponse(BaseModel):
    """Reply to REQUEST_LOGOGRAM_CRITIQUE."""
    name: str = Field("", description="Logogram name")
    response: str = Field("", description="Your response")
    stop: bool = Field(True, description="Indicates if you want to end the conversation")


class LogogramIteration(BaseModel):
    """One generator/adversary round, as streamed on /logograms."""
    generator: LogogramIterationResponse = Field(default_factory=LogogramIterationResponse)
    adversary: LogogramCritiqueResponse = Field(default_factory=LogogramCritiqueResponse)

    def to_dict(self) -> dict:
        return self.model_dump()


class UsedWords(BaseModel):
    """Dictionary words detected in one message, as streamed on /words."""
    words: List[str] = Field(default_factory=list)

    def to_dict(self) -> dict:
        return self.model_dump()


# ============================================================================
# Web API Responses
# ============================================================================

class AgentInfo(BaseModel):
    name: str
    model: str
    layer: str
    connected_at: float


class HealthStatus(BaseModel):
    """Health check response."""
    status: str = Field(..., description="Server status")
    version: str = Field(..., description="Glossa version")
    timestamp: float = Field(..., description="Server time")
    listening: bool = Field(..., description="Whether the hub still accepts agent messages")
    connected_agents: int = Field(..., description="Number of connected agents")
    agents: List[AgentInfo] = Field(default_factory=list)
    generations: int = Field(0, description="Generations completed so far, seed excluded")
    current_job: Optional[str] = Field(None, description="Job the processor is running")
