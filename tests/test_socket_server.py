"""Tests for SocketServer: NDJSON over a Unix domain socket."""

from __future__ import annotations

import asyncio
import json
import os
import shutil
import stat
import tempfile

import pytest

from claude_mirror.bridge.socket_server import SocketServer
from claude_mirror.bridge.types import BridgeMessage, EventType


def _line(event_type: str = "agent_response", session_id: str = "s1", content: str = "") -> bytes:
    data = {
        "type": event_type,
        "sessionId": session_id,
        "timestamp": "2026-01-01T00:00:00Z",
        "content": content,
    }
    return (json.dumps(data) + "\n").encode()


@pytest.fixture
def sock_path():
    # AF_UNIX paths are limited to ~100 bytes; pytest's tmp_path can exceed that.
    directory = tempfile.mkdtemp(prefix="cm-")
    yield os.path.join(directory, "bridge.sock")
    shutil.rmtree(directory, ignore_errors=True)


@pytest.fixture
def received():
    return []


@pytest.fixture
async def server(sock_path, received):
    async def handler(msg: BridgeMessage) -> BridgeMessage | None:
        received.append(msg)
        if msg.type is EventType.APPROVAL_REQUEST:
            return BridgeMessage(
                type=EventType.APPROVAL_RESPONSE, session_id=msg.session_id, content="approve"
            )
        return None

    srv = SocketServer(sock_path, handler)
    await srv.start()
    yield srv
    await srv.close()


async def _wait_for(predicate, timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


class TestSocketServer:
    async def test_socket_is_owner_only(self, server, sock_path) -> None:
        assert stat.S_IMODE(os.stat(sock_path).st_mode) == 0o600

    async def test_messages_handled_in_order(self, server, received) -> None:
        reader, writer = await asyncio.open_unix_connection(str(server.socket_path))
        writer.write(_line(content="one") + _line(content="two") + _line(content="three"))
        await writer.drain()
        await _wait_for(lambda: len(received) == 3)
        assert [m.content for m in received] == ["one", "two", "three"]
        writer.close()

    async def test_response_written_back(self, server) -> None:
        reader, writer = await asyncio.open_unix_connection(str(server.socket_path))
        writer.write(_line("approval_request", content="Bash: ls"))
        await writer.drain()
        reply = json.loads(await asyncio.wait_for(reader.readline(), timeout=1))
        assert reply["type"] == "approval_response"
        assert reply["content"] == "approve"
        writer.close()

    async def test_malformed_line_closes_connection(self, server, received) -> None:
        reader, writer = await asyncio.open_unix_connection(str(server.socket_path))
        writer.write(b"{not json}\n" + _line(content="after"))
        await writer.drain()
        assert await asyncio.wait_for(reader.read(), timeout=1) == b""
        assert received == []
        writer.close()

    async def test_server_survives_malformed_client(self, server, received) -> None:
        _, bad = await asyncio.open_unix_connection(str(server.socket_path))
        bad.write(b"garbage\n")
        await bad.drain()

        _, good = await asyncio.open_unix_connection(str(server.socket_path))
        good.write(_line(content="ok"))
        await good.drain()
        await _wait_for(lambda: len(received) == 1)
        assert received[0].content == "ok"
        bad.close()
        good.close()

    async def test_client_count(self, server) -> None:
        _, writer = await asyncio.open_unix_connection(str(server.socket_path))
        await _wait_for(lambda: server.client_count == 1)
        writer.close()
        await _wait_for(lambda: server.client_count == 0)

    async def test_handler_error_keeps_connection(self, sock_path) -> None:
        seen = []

        async def handler(msg: BridgeMessage) -> None:
            seen.append(msg.content)
            if msg.content == "boom":
                raise RuntimeError("handler bug")

        srv = SocketServer(sock_path, handler)
        await srv.start()
        try:
            _, writer = await asyncio.open_unix_connection(sock_path)
            writer.write(_line(content="boom") + _line(content="next"))
            await writer.drain()
            await _wait_for(lambda: seen == ["boom", "next"])
            writer.close()
        finally:
            await srv.close()


class TestLifecycle:
    async def test_stale_socket_file_is_replaced(self, sock_path) -> None:
        with open(sock_path, "w") as f:
            f.write("stale")

        async def handler(msg):
            return None

        srv = SocketServer(sock_path, handler)
        await srv.start()
        assert stat.S_ISSOCK(os.stat(sock_path).st_mode)
        await srv.close()

    async def test_close_removes_socket(self, sock_path) -> None:
        async def handler(msg):
            return None

        srv = SocketServer(sock_path, handler)
        await srv.start()
        await srv.close()
        assert not os.path.exists(sock_path)
