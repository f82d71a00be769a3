"""
Exception types.

Transport problems never surface as exceptions: connectors turn them into a
terminal `error` event. The types below cover the remaining failure modes.
"""
from __future__ import annotations


class StreamForgeError(Exception):
    """Base class for all StreamForge errors."""


class MalformedToolArguments(StreamForgeError):
    """Accumulated tool-call argument text could not be parsed into an object."""

    def __init__(self, index: int, raw: str, reason: str = ""):
        self.index = index
        self.raw = raw
        detail = f": {reason}" if reason else ""
        super().__init__(f"Malformed arguments for tool call #{index}{detail}")


class ProtocolViolation(StreamForgeError):
    """A connector emitted an event sequence that breaks the stream invariants."""


class SchemaNormalizationError(StreamForgeError):
    """A tool parameter schema cannot be reduced to a single object schema."""


class ToolInputError(StreamForgeError):
    """A tool received invalid input parameters."""

    status = 400


class ToolAuthorizationError(ToolInputError):
    """A tool call is not authorized for the caller."""

    status = 403
