"""Unix domain socket listener for hook processes.

Protocol: newline-delimited JSON. Each line is one :class:`BridgeMessage`.
Lines on one connection are handled strictly in order; when the handler
returns a response envelope it is written back on the same connection as
one line (hooks that wait for an approval keep the connection open for it).

A malformed line is logged and its connection closed; other connections
and the daemon are unaffected.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from collections.abc import Awaitable, Callable
from pathlib import Path

from ..errors import EnvelopeError
from .types import BridgeMessage

logger = logging.getLogger(__name__)

MessageHandler = Callable[[BridgeMessage], Awaitable[BridgeMessage | None]]

# Tool results can carry large outputs.
MAX_LINE_BYTES = 1024 * 1024


class SocketServer:
    """Accepts hook connections and feeds validated envelopes to *handler*."""

    def __init__(self, socket_path: str, handler: MessageHandler) -> None:
        self.socket_path = Path(socket_path).expanduser()
        self._handler = handler
        self._server: asyncio.AbstractServer | None = None
        self._writers: set[asyncio.StreamWriter] = set()

    @property
    def client_count(self) -> int:
        return len(self._writers)

    @property
    def is_serving(self) -> bool:
        return self._server is not None and self._server.is_serving()

    async def start(self) -> None:
        """Bind the socket, replacing a stale socket file left by a crash."""
        self.socket_path.parent.mkdir(parents=True, exist_ok=True)
        if self.socket_path.exists():
            logger.info("Removing stale socket file %s", self.socket_path)
            self.socket_path.unlink()
        self._server = await asyncio.start_unix_server(
            self._handle_client,
            path=str(self.socket_path),
            limit=MAX_LINE_BYTES,
        )
        os.chmod(self.socket_path, 0o600)
        logger.info("Listening for hooks on %s", self.socket_path)

    async def close(self) -> None:
        if self._server is not None:
            self._server.close()
        for writer in list(self._writers):
            writer.close()
        if self._server is not None:
            await self._server.wait_closed()
            self._server = None
        self.socket_path.unlink(missing_ok=True)
        logger.info("Socket server stopped")

    async def _handle_client(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        self._writers.add(writer)
        logger.debug("Hook connected (%d open)", len(self._writers))
        try:
            while True:
                try:
                    line = await reader.readline()
                except (asyncio.LimitOverrunError, ValueError):
                    logger.warning("Dropping connection: line exceeds %d bytes", MAX_LINE_BYTES)
                    break
                except ConnectionError:
                    break
                if not line:
                    break
                if not line.strip():
                    continue

                try:
                    message = BridgeMessage.from_json(line)
                except EnvelopeError as e:
                    logger.warning("Dropping connection after malformed message: %s", e)
                    break

                try:
                    response = await self._handler(message)
                except Exception:
                    logger.exception(
                        "Error handling %s for session %s",
                        message.type.value,
                        message.session_id,
                    )
                    continue

                if response is not None and not await self._write(writer, response):
                    break
        finally:
            self._writers.discard(writer)
            writer.close()
            with contextlib.suppress(ConnectionError):
                await writer.wait_closed()
            logger.debug("Hook disconnected (%d open)", len(self._writers))

    async def _write(self, writer: asyncio.StreamWriter, message: BridgeMessage) -> bool:
        try:
            writer.write((message.to_json() + "\n").encode("utf-8"))
            await writer.drain()
        except ConnectionError:
            # Fire-and-forget hooks hang up without reading a reply.
            logger.debug("Peer closed before %s could be written", message.type.value)
            return False
        return True
