"""
responses.py — response encoding, fault injection, and response decoding.

Response body (after the 6-digit length prefix)::

    Header (3) | Command ID (4) | State (8) [ | Signature length (6) | Signature (N) ]

The signature part is present only when the state is ``00000000``.

Fault injection lives here and nowhere else: a FaultPolicy may swap a
successful result for the canned "service unavailable" response, to mimic a
device that is intermittently busy. Parsing and execution never see it.
"""

import random
from dataclasses import dataclass
from typing import Optional

from .config import (
    COMMAND_ID_WIDTH,
    HEADER_WIDTH,
    PRODUCTION,
    SIGNATURE_LENGTH_WIDTH,
    STATE_WIDTH,
    ProtocolConfig,
)
from .errors import SUCCESS_STATE, ErrorKind, FramingError
from .executor import Result, Success, failure_for
from .framing import decode_length, encode_length, frame


# -------------------------
# Fault policies
# -------------------------

class FaultPolicy:
    """Decides whether a successful response is replaced by 'service unavailable'."""

    def should_fail(self) -> bool:
        raise NotImplementedError


class NoFaults(FaultPolicy):
    """Never inject a fault."""

    def should_fail(self) -> bool:
        return False


class FixedFaults(FaultPolicy):
    """Always or never fail; handy for tests that need a known outcome."""

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled

    def should_fail(self) -> bool:
        return self.enabled


class RandomFaults(FaultPolicy):
    """Fail each successful response independently with the given probability."""

    def __init__(self, probability: float, rng: Optional[random.Random] = None) -> None:
        if not 0.0 <= probability <= 1.0:
            raise ValueError(f"Fault probability must be between 0 and 1, got {probability}")
        self.probability = probability
        self.rng = rng or random.Random()

    def should_fail(self) -> bool:
        return self.rng.random() < self.probability

    def __repr__(self) -> str:
        return f"RandomFaults(probability={self.probability})"


def fault_policy_for_rate(rate: float, rng: Optional[random.Random] = None) -> FaultPolicy:
    """Pick the cheapest policy that behaves like the given rate."""
    if rate <= 0.0:
        return NoFaults()
    if rate >= 1.0:
        return FixedFaults(True)
    return RandomFaults(rate, rng)


# -------------------------
# Encoding
# -------------------------

def encode_body(result: Result) -> bytes:
    """Serialise a Result without the length prefix."""
    if isinstance(result, Success):
        return b"".join((
            result.header_code,
            result.command_id,
            SUCCESS_STATE,
            encode_length(len(result.signature)),
            result.signature,
        ))
    return result.header_code + result.command_id + result.kind.state


def encode(
    result: Result,
    fault_policy: Optional[FaultPolicy] = None,
    config: ProtocolConfig = PRODUCTION,
) -> bytes:
    """
    Encode a Result as a complete wire response (length prefix included).

    Only Success results go through the fault policy; errors are already
    errors and are sent as they are.
    """
    if isinstance(result, Success) and fault_policy is not None and fault_policy.should_fail():
        result = failure_for(ErrorKind.SERVICE_UNAVAILABLE, config)
    return frame(encode_body(result))


def canned_response(kind: ErrorKind, config: ProtocolConfig = PRODUCTION) -> bytes:
    """Fixed response for protocol-level failures, e.g. b'000015CCE11030000E000'."""
    return encode(failure_for(kind, config), config=config)


# -------------------------
# Decoding (client side)
# -------------------------

_FIXED_PART = HEADER_WIDTH + COMMAND_ID_WIDTH + STATE_WIDTH


@dataclass(frozen=True)
class Response:
    """A decoded response body."""

    header_code: bytes
    command_id: bytes
    state: bytes
    signature: bytes = b""

    @property
    def ok(self) -> bool:
        return self.state == SUCCESS_STATE

    @property
    def error(self) -> Optional[ErrorKind]:
        """ErrorKind for a failed response, None on success or an unlisted state."""
        if self.ok:
            return None
        try:
            return ErrorKind(self.state)
        except ValueError:
            return None


def decode_response(body: bytes) -> Response:
    """
    Decode a response body (without its length prefix).

    Raises:
        ValueError: body is shorter than the fixed part, or the signature
            length does not match the bytes that follow it.
    """
    if len(body) < _FIXED_PART:
        raise ValueError(f"Response too short: {len(body)} bytes")

    header_code = body[:HEADER_WIDTH]
    command_id = body[HEADER_WIDTH : HEADER_WIDTH + COMMAND_ID_WIDTH]
    state = body[HEADER_WIDTH + COMMAND_ID_WIDTH : _FIXED_PART]
    rest = body[_FIXED_PART:]

    if state != SUCCESS_STATE:
        if rest:
            raise ValueError(f"Unexpected {len(rest)} trailing bytes after error state")
        return Response(header_code, command_id, state)

    try:
        sig_len = decode_length(rest[:SIGNATURE_LENGTH_WIDTH])
    except FramingError as exc:
        raise ValueError(f"Bad signature length field: {exc}") from exc
    signature = rest[SIGNATURE_LENGTH_WIDTH:]
    if len(signature) != sig_len:
        raise ValueError(f"Signature length field says {sig_len}, got {len(signature)} bytes")
    return Response(header_code, command_id, state, signature)
