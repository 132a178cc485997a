"""
commands.py — request layout and the parser that turns a frame into a Command.

Request body (after the 6-digit length prefix)::

    +--------+------------+---------+------+------+---------+-------------+------------+
    | Header | Command ID | Key ref | Hash | Sign | Padding | Hash length | Hash value |
    | 3      | 4          | 11 (*)  | 2    | 2    | 2       | 6           | 40 (*)     |
    +--------+------------+---------+------+------+---------+-------------+------------+

(*) widths come from ProtocolConfig; production key references are wider.

The parser only checks structure. Field values (mechanism codes, declared
hash length) are the executor's business so that a recognised command with
bad values is reported as "not allowed" rather than "unknown command".
"""

from dataclasses import dataclass
from typing import List

from .config import (
    COMMAND_ID_WIDTH,
    HASH_LENGTH_WIDTH,
    HEADER_WIDTH,
    MECHANISM_WIDTH,
    PRODUCTION,
    ProtocolConfig,
)
from .errors import InvalidMessage, UnknownCommand


@dataclass(frozen=True)
class Command:
    """A parsed asymmetric-signature request. All fields are raw bytes."""

    header_code: bytes
    command_id: bytes
    key_reference: bytes
    hash_mechanism: bytes
    sign_mechanism: bytes
    padding_scheme: bytes
    declared_hash_length: bytes
    hash_value: bytes

    def to_bytes(self) -> bytes:
        """Serialise back to a request body (no length prefix)."""
        return b"".join((
            self.header_code,
            self.command_id,
            self.key_reference,
            self.hash_mechanism,
            self.sign_mechanism,
            self.padding_scheme,
            self.declared_hash_length,
            self.hash_value,
        ))

    def __repr__(self) -> str:
        return (
            f"Command(header={self.header_code!r}, id={self.command_id!r}, "
            f"key={self.key_reference!r}, mechanisms={self.hash_mechanism!r}/"
            f"{self.sign_mechanism!r}/{self.padding_scheme!r}, "
            f"hash_len={self.declared_hash_length!r})"
        )


def _split(data: bytes, widths: List[int]) -> List[bytes]:
    fields = []
    offset = 0
    for width in widths:
        fields.append(data[offset : offset + width])
        offset += width
    return fields


def parse(body: bytes, config: ProtocolConfig = PRODUCTION) -> Command:
    """Decode a frame body into a Command.

    Args:
        body: Frame body as returned by ``read_frame``.
        config: Protocol widths and the expected header tag.

    Raises:
        InvalidMessage: the body does not start with the configured header.
        UnknownCommand: the command id is not 1103, or the remaining bytes
            do not add up to the 1103 layout exactly.
    """
    header = body[:HEADER_WIDTH]
    if header != config.header_bytes:
        raise InvalidMessage(f"Unexpected header {header!r}")

    rest = body[HEADER_WIDTH:]
    command_id = rest[:COMMAND_ID_WIDTH]
    if command_id != config.command_id_bytes:
        raise UnknownCommand(f"Unknown command id {command_id!r}")
    if len(rest) != config.body_width:
        raise UnknownCommand(
            f"Command {command_id!r} expects {config.body_width} bytes, got {len(rest)}"
        )

    (
        key_reference,
        hash_mechanism,
        sign_mechanism,
        padding_scheme,
        declared_hash_length,
        hash_value,
    ) = _split(rest[COMMAND_ID_WIDTH:], [
        config.key_reference_width,
        MECHANISM_WIDTH,
        MECHANISM_WIDTH,
        MECHANISM_WIDTH,
        HASH_LENGTH_WIDTH,
        config.hash_width,
    ])

    return Command(
        header_code=header,
        command_id=command_id,
        key_reference=key_reference,
        hash_mechanism=hash_mechanism,
        sign_mechanism=sign_mechanism,
        padding_scheme=padding_scheme,
        declared_hash_length=declared_hash_length,
        hash_value=hash_value,
    )
