"""
framing.py — 6-digit ASCII length-prefixed framing for asyncio streams.

Protocol:
- Each message = 6 ASCII decimal digits (N, zero padded) + N bytes of body.
- The length excludes the 6-byte prefix itself.
- A ceiling on N is enforced by the reader so a broken peer can't make us
  allocate silly amounts of memory. The real device has no such limit.
"""

import asyncio
from typing import Optional

from .config import LENGTH_FIELD_WIDTH
from .errors import ConnectionClosed, FramingError

MAX_LENGTH_VALUE = 10 ** LENGTH_FIELD_WIDTH - 1


def encode_length(n: int) -> bytes:
    """Render a body length as the 6-digit prefix (e.g. 277 -> b'000277')."""
    if not 0 <= n <= MAX_LENGTH_VALUE:
        raise ValueError(f"Length {n} does not fit a {LENGTH_FIELD_WIDTH}-digit field")
    return f"{n:0{LENGTH_FIELD_WIDTH}d}".encode("ascii")


def decode_length(header: bytes) -> int:
    """
    Parse a 6-byte length prefix.

    Only ASCII digits are accepted: no sign, no whitespace, no underscores
    (int() would happily take all three).
    """
    if len(header) != LENGTH_FIELD_WIDTH or not header.isdigit():
        raise FramingError(f"Malformed length header: {header!r}")
    return int(header)


def frame(body: bytes) -> bytes:
    """Prefix a body with its length."""
    return encode_length(len(body)) + body


async def read_exactly(reader: asyncio.StreamReader, n: int) -> bytes:
    """readexactly() that reports a short read as ConnectionClosed."""
    try:
        return await reader.readexactly(n)
    except asyncio.IncompleteReadError as exc:
        raise ConnectionClosed(n, len(exc.partial)) from exc


async def read_frame(
    reader: asyncio.StreamReader,
    max_frame_size: Optional[int] = None,
    idle_timeout: Optional[float] = None,
) -> bytes:
    """
    Read one length-prefixed frame and return its body.

    idle_timeout bounds the wait for the length prefix only; once a frame has
    started, the body is read for as long as the peer keeps the socket open.

    Raises:
        ConnectionClosed: peer went away before the header or body was complete.
        FramingError: header is not 6 digits, or declares more than max_frame_size.
        asyncio.TimeoutError: no length prefix arrived within idle_timeout.
    """
    # 1) Length prefix.
    header = await asyncio.wait_for(read_exactly(reader, LENGTH_FIELD_WIDTH), idle_timeout)
    length = decode_length(header)

    if max_frame_size is not None and length > max_frame_size:
        raise FramingError(f"Frame too large: {length} > {max_frame_size}")

    # 2) Body, exactly as long as the prefix said.
    return await read_exactly(reader, length)


async def write_frame(writer: asyncio.StreamWriter, body: bytes) -> None:
    """Write a body with its length prefix and wait for the transport to flush."""
    writer.write(frame(body))
    await writer.drain()
