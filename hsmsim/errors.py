"""
errors.py — error taxonomy shared by the parser, executor and server.

Every failure a client can observe maps to one ErrorKind, and each kind owns
its 8-digit command-state code. Exceptions carry the kind so the connection
handler can turn them into the right wire response without a lookup table.
"""

from enum import Enum

SUCCESS_STATE = b"00000000"


class ErrorKind(Enum):
    """Failure outcomes and their wire command-state codes."""
    INVALID_MESSAGE = b"00000001"
    SERVICE_UNAVAILABLE = b"00000002"
    UNKNOWN_COMMAND = b"0000E000"
    NOT_ALLOWED = b"00018400"
    INTERNAL_ERROR = b"0001C800"

    @property
    def state(self) -> bytes:
        return self.value


class HSMError(Exception):
    """Base class for everything the emulator raises on purpose."""


class ConfigError(HSMError, ValueError):
    """Bad configuration value (profile name, env var, width)."""


class FramingError(HSMError):
    """Length header was malformed, too large, or the body never arrived."""
    kind = ErrorKind.INVALID_MESSAGE


class ConnectionClosed(FramingError):
    """Peer closed the socket before a whole frame was read."""

    def __init__(self, expected: int, received: int) -> None:
        super().__init__(f"Connection closed after {received} of {expected} bytes")
        self.expected = expected
        self.received = received


class ParseError(HSMError):
    """A frame arrived intact but is not a command we understand."""
    kind = ErrorKind.INTERNAL_ERROR


class InvalidMessage(ParseError):
    """Header tag missing or different from the configured one."""
    kind = ErrorKind.INVALID_MESSAGE


class UnknownCommand(ParseError):
    """Unrecognised command id, or the body width does not fit the command."""
    kind = ErrorKind.UNKNOWN_COMMAND
