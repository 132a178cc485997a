"""
client.py — build sign requests and send them to a running emulator.

Used by the one-shot ``--mode sign`` CLI and by the end-to-end tests.
"""

import asyncio
import logging
from typing import Optional

from .commands import Command
from .config import PRODUCTION, ProtocolConfig
from .framing import read_frame, write_frame
from .responses import Response, decode_response

logger = logging.getLogger(__name__)


def build_sign_request(
    key_reference: str,
    hash_value: bytes,
    config: ProtocolConfig = PRODUCTION,
    header_code: Optional[str] = None,
    hash_mechanism: Optional[str] = None,
    sign_mechanism: Optional[str] = None,
    padding_scheme: Optional[str] = None,
) -> Command:
    """Build a 1103 request for the given key and digest.

    Args:
        key_reference: Key name; right-padded with spaces to the key width.
        hash_value: Digest bytes, exactly ``config.hash_width`` long.
        config: Protocol profile the server runs with.
        header_code, hash_mechanism, sign_mechanism, padding_scheme:
            Overrides; default to what the profile accepts.

    Raises:
        ValueError: key reference too long or digest of the wrong size.
    """
    if len(key_reference) > config.key_reference_width:
        raise ValueError(
            f"Key reference must be at most {config.key_reference_width} characters, "
            f"got {len(key_reference)}"
        )
    if len(hash_value) != config.hash_width:
        raise ValueError(f"Hash value must be {config.hash_width} bytes, got {len(hash_value)}")

    policy = config.policy
    return Command(
        header_code=(header_code or config.header_code).encode("ascii"),
        command_id=config.command_id_bytes,
        key_reference=key_reference.ljust(config.key_reference_width).encode("ascii"),
        hash_mechanism=(hash_mechanism or policy.hash_mechanism).encode("ascii"),
        sign_mechanism=(sign_mechanism or policy.sign_mechanism).encode("ascii"),
        padding_scheme=(padding_scheme or policy.padding_scheme).encode("ascii"),
        declared_hash_length=config.declared_hash_length,
        hash_value=hash_value,
    )


async def send_request(host: str, port: int, body: bytes, timeout: Optional[float] = 10.0) -> Response:
    """Open a connection, send one request body, and decode the response."""
    reader, writer = await asyncio.open_connection(host, port)
    try:
        await write_frame(writer, body)
        response = await asyncio.wait_for(read_frame(reader), timeout)
    finally:
        writer.close()
        await writer.wait_closed()
    logger.debug("Response from %s:%s: %r", host, port, response[:32])
    return decode_response(response)
