"""
Error taxonomy for the coordination server.

Every error raised by the hub, router, engine or workflows is a
CoordinationError. Each carries a ``kind`` label and a ``fatal`` flag; the
server supervisor logs non-fatal errors and shuts down on the first fatal one.
"""

from typing import Optional


class CoordinationError(Exception):
    """Base exception for coordination errors."""

    kind = "coordination"
    fatal = True

    def __init__(self, message: str = "", *, fatal: Optional[bool] = None):
        super().__init__(message)
        if fatal is not None:
            self.fatal = fatal

    def __str__(self) -> str:
        message = super().__str__()
        return f"{self.kind}: {message}" if message else self.kind


class ConfigurationError(CoordinationError):
    """Raised when server or agent configuration is invalid."""

    kind = "configuration"


class TransportError(CoordinationError):
    """Raised when a stream write or read fails."""

    kind = "transport"
    fatal = False


class ProtocolError(CoordinationError):
    """Raised when a frame or agent reply cannot be understood."""

    kind = "protocol"


class CapacityError(CoordinationError):
    """Raised when a bounded queue cannot satisfy a request."""

    kind = "capacity"


class QueueFullError(CapacityError):
    kind = "queue full"


class QueueEmptyError(CapacityError):
    kind = "queue empty"


class OutOfRangeError(CapacityError):
    kind = "out of range"


class NotFoundError(CoordinationError):
    """Raised when a named agent is not registered."""

    kind = "not found"
    fatal = False


class CancelledOperationError(CoordinationError):
    """Raised when an operation is abandoned because of shutdown or timeout."""

    kind = "cancelled"


class ExternalServiceError(CoordinationError):
    """Raised when an agent or LLM returns something unusable."""

    kind = "external service"
