"""Shared pytest fixtures for claude_mirror tests.

These fixtures are automatically available to all test files in this directory.
Class-level fixtures with the same name take precedence (pytest scoping rules).
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from claude_mirror.bridge.types import BridgeMessage, EventType
from claude_mirror.chat.base import Button
from claude_mirror.database.models import init_db
from claude_mirror.database.repository import SessionRepository
from claude_mirror.registry import SessionRegistry


class FakeChatClient:
    """In-memory ChatClient that records every call.

    ``failures`` is a list of exceptions raised, in order, by the next
    send_message calls before sends start succeeding.
    """

    def __init__(self) -> None:
        self.sent: list[tuple[str | None, str, list[Button] | None]] = []
        self.failures: list[Exception] = []
        self.created: list[str] = []
        self.closed: list[str] = []
        self.reopened: list[str] = []
        self.thread_ids = iter(str(900 + i) for i in range(1000))
        self.supports_threads = True
        self.create_delay = 0.0
        self.reopen_error: Exception | None = None

    async def send_message(self, destination_id, text, buttons=None) -> None:
        if self.failures:
            raise self.failures.pop(0)
        self.sent.append((destination_id, text, buttons))

    async def create_thread(self, name: str) -> str | None:
        import asyncio

        if self.create_delay:
            await asyncio.sleep(self.create_delay)
        if not self.supports_threads:
            return None
        self.created.append(name)
        return next(self.thread_ids)

    async def close_thread(self, thread_id: str) -> None:
        self.closed.append(thread_id)

    async def reopen_thread(self, thread_id: str) -> None:
        if self.reopen_error is not None:
            raise self.reopen_error
        self.reopened.append(thread_id)

    def texts(self) -> list[str]:
        return [t for _, t, _ in self.sent]

    def texts_to(self, destination_id: str | None) -> list[str]:
        return [t for d, t, _ in self.sent if d == destination_id]


@pytest.fixture
def chat() -> FakeChatClient:
    return FakeChatClient()


@pytest.fixture
def injector() -> AsyncMock:
    """A TerminalInjector double: every pane is alive, every injection succeeds."""
    inj = AsyncMock()
    inj.inject = AsyncMock()
    inj.send_key = AsyncMock()
    inj.pane_alive = AsyncMock(return_value=True)
    return inj


@pytest.fixture
async def session_repo(tmp_path) -> SessionRepository:
    """A repository backed by a temporary database."""
    db_path = str(tmp_path / "sessions.db")
    await init_db(db_path)
    return SessionRepository(db_path)


@pytest.fixture
def registry(session_repo: SessionRepository) -> SessionRegistry:
    return SessionRegistry(session_repo)


def make_message(
    event_type: EventType,
    session_id: str = "sess-1",
    content: str = "",
    **metadata,
) -> BridgeMessage:
    """Build an inbound envelope with optional metadata keyword arguments."""
    return BridgeMessage(type=event_type, session_id=session_id, content=content, metadata=metadata)
