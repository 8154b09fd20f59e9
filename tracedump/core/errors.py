"""
tracedump Error Types

I/O errors abort an invocation. Format errors found while streaming events
are collected into an ErrorSet instead of being raised to the caller.
"""

from typing import Optional


class TraceDumpError(Exception):
    """Base class for all tracedump errors."""


class TraceIOError(TraceDumpError):
    """The trace file could not be opened or mapped."""


class TraceFormatError(TraceDumpError):
    """The trace content does not follow the trace.dat format."""


class HeaderError(TraceFormatError):
    """Malformed trace.dat header."""

    def __init__(self, message: str, offset: Optional[int] = None):
        self.offset = offset
        if offset is not None:
            message = f"{message} (at offset {offset:#x})"
        super().__init__(message)


class EventDecodeError(TraceFormatError):
    """An event record or one of its fields could not be decoded."""


class TimestampOrderError(TraceFormatError):
    """A timestamp went backwards while unique timestamps were requested."""

    def __init__(self, timestamp: int, previous: int):
        self.timestamp = timestamp
        self.previous = previous
        super().__init__(
            f"timestamp {timestamp} is lower than the previous timestamp {previous}"
        )


class ConfigError(TraceDumpError):
    """Invalid configuration file or value."""
