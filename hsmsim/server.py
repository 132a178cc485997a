"""
server.py — TCP listener and per-connection request loop.

Each accepted connection gets its own task (asyncio.start_server does the
spawning) and its own error boundary. Inside a connection, requests are
handled strictly one at a time: read frame, parse, execute, encode, write,
then read the next frame.

What ends a connection:
- The peer closes the socket (mid-frame or between frames).
- The idle timeout fires while waiting for the next frame.
- A framing error. The stream can't be resynchronised after a bad length
  header, so we answer with "invalid message" and hang up.
"""

import asyncio
import logging
from typing import Optional

from . import commands, executor
from .config import PRODUCTION, ProtocolConfig, ServerSettings
from .errors import ConnectionClosed, ErrorKind, FramingError, ParseError
from .framing import read_frame
from .responses import FaultPolicy, canned_response, encode, fault_policy_for_rate

logger = logging.getLogger(__name__)


class HSMServer:
    """
    Emulated HSM endpoint.

    Holds only configuration; nothing is shared between connections, so no
    locking is needed anywhere below.
    """

    def __init__(
        self,
        settings: Optional[ServerSettings] = None,
        config: ProtocolConfig = PRODUCTION,
        fault_policy: Optional[FaultPolicy] = None,
    ) -> None:
        self.settings = settings or ServerSettings()
        self.config = config
        self.fault_policy = fault_policy or fault_policy_for_rate(self.settings.fault_rate)
        self._server: Optional[asyncio.Server] = None

    async def listen(self) -> asyncio.Server:
        """Bind the listener without blocking; returns the asyncio Server."""
        self._server = await asyncio.start_server(self.handle_conn, self.settings.host, self.settings.port)
        addrs = ", ".join(str(sock.getsockname()) for sock in self._server.sockets or [])
        logger.info("HSM emulator listening on %s (fault policy: %r)", addrs, self.fault_policy)
        return self._server

    async def start(self) -> None:
        """Listen for TCP connections and serve forever."""
        server = await self.listen()
        async with server:
            await server.serve_forever()

    @property
    def port(self) -> Optional[int]:
        """Actual bound port (useful when settings.port is 0)."""
        if self._server is None or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[1]

    def process_frame(self, body: bytes) -> bytes:
        """
        Run one frame body through parse -> execute -> encode.

        Never raises: every failure becomes an encoded error response.
        """
        try:
            cmd = commands.parse(body, self.config)
            result = executor.execute(cmd, self.config)
            response = encode(result, self.fault_policy, self.config)
        except ParseError as exc:
            logger.debug("Rejected frame (%s): %s", exc.kind.name, exc)
            return canned_response(exc.kind, self.config)
        except Exception:
            logger.exception("Unexpected error while processing frame")
            return canned_response(ErrorKind.INTERNAL_ERROR, self.config)

        logger.debug("%r -> %r", cmd, response[:27])
        return response

    async def handle_conn(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        """Per-connection loop: one request, one response, until the peer goes away."""
        peer = writer.get_extra_info("peername")
        logger.info("Connection from %s", peer)
        try:
            while True:
                try:
                    body = await read_frame(reader, self.settings.max_frame_size, self.settings.idle_timeout)
                except ConnectionClosed:
                    break
                except asyncio.TimeoutError:
                    logger.info("Closing idle connection from %s", peer)
                    break
                except FramingError as exc:
                    logger.warning("Framing error from %s: %s", peer, exc)
                    writer.write(canned_response(exc.kind, self.config))
                    await writer.drain()
                    break

                writer.write(self.process_frame(body))
                await writer.drain()
        except (ConnectionError, OSError) as exc:
            # Transport went away while writing; nothing left to answer.
            logger.info("Connection from %s lost: %s", peer, exc)
        except Exception:
            logger.exception("Connection handler for %s crashed", peer)
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except (ConnectionError, OSError):
                pass
            logger.info("Connection from %s closed", peer)
