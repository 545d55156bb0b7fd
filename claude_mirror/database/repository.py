"""Session repository: persisted state of every mirrored session."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import aiosqlite

from ..bridge.types import SessionStatus

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """A stored agent session."""

    id: str
    status: SessionStatus
    thread_id: str | None
    hostname: str | None
    project_dir: str | None
    terminal_target: str | None
    terminal_socket: str | None
    created_at: str
    last_activity: str

    @property
    def is_active(self) -> bool:
        return self.status is SessionStatus.ACTIVE

    @classmethod
    def from_row(cls, row: aiosqlite.Row) -> Session:
        data: dict[str, Any] = dict(row)
        data["status"] = SessionStatus(data["status"])
        return cls(**data)


class SessionRepository:
    """CRUD operations for session rows.

    Only :class:`claude_mirror.registry.SessionRegistry` should call the
    mutating methods; it serializes them.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path

    async def get(self, session_id: str) -> Session | None:
        """Get a session by id."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute("SELECT * FROM sessions WHERE id = ?", (session_id,))
            row = await cursor.fetchone()
            return Session.from_row(row) if row else None

    async def get_by_thread(self, thread_id: str) -> Session | None:
        """Reverse lookup: the active session bound to a thread."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM sessions WHERE thread_id = ? AND status = 'active' "
                "ORDER BY last_activity DESC LIMIT 1",
                (thread_id,),
            )
            row = await cursor.fetchone()
            return Session.from_row(row) if row else None

    async def create(
        self,
        session_id: str,
        *,
        now: str,
        hostname: str | None = None,
        project_dir: str | None = None,
        terminal_target: str | None = None,
        terminal_socket: str | None = None,
    ) -> bool:
        """Insert a new active session in one statement.

        Returns True if a row was inserted, False if the id already existed.
        """
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                """INSERT INTO sessions
                     (id, status, hostname, project_dir, terminal_target,
                      terminal_socket, created_at, last_activity)
                   VALUES (?, 'active', ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(id) DO NOTHING""",
                (session_id, hostname, project_dir, terminal_target, terminal_socket, now, now),
            )
            await db.commit()
            return cursor.rowcount > 0

    async def set_status(self, session_id: str, status: SessionStatus) -> bool:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                "UPDATE sessions SET status = ? WHERE id = ?",
                (status.value, session_id),
            )
            await db.commit()
            return cursor.rowcount > 0

    async def set_thread(self, session_id: str, thread_id: str) -> bool:
        """Bind a thread if none is bound yet. Returns True if the row changed."""
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                "UPDATE sessions SET thread_id = ? WHERE id = ? AND thread_id IS NULL",
                (thread_id, session_id),
            )
            await db.commit()
            return cursor.rowcount > 0

    async def set_terminal(
        self,
        session_id: str,
        terminal_target: str,
        terminal_socket: str | None,
    ) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """UPDATE sessions SET
                     terminal_target = ?,
                     terminal_socket = COALESCE(?, terminal_socket)
                   WHERE id = ?""",
                (terminal_target, terminal_socket, session_id),
            )
            await db.commit()

    async def touch(self, session_id: str, at: str) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                "UPDATE sessions SET last_activity = ? WHERE id = ?",
                (at, session_id),
            )
            await db.commit()

    async def list_active(self) -> list[Session]:
        """All active sessions, most recently active first."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM sessions WHERE status = 'active' ORDER BY last_activity DESC"
            )
            rows = await cursor.fetchall()
            return [Session.from_row(row) for row in rows]

    async def list_inactive_since(self, cutoff: str) -> list[Session]:
        """Active sessions whose last activity is older than *cutoff*."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM sessions WHERE status = 'active' AND last_activity < ? "
                "ORDER BY last_activity ASC",
                (cutoff,),
            )
            rows = await cursor.fetchall()
            return [Session.from_row(row) for row in rows]

    async def find_active_by_terminal(
        self,
        terminal_target: str,
        exclude_id: str,
    ) -> Session | None:
        """Another active session that claims the same terminal target."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM sessions WHERE terminal_target = ? AND status = 'active' "
                "AND id != ? ORDER BY last_activity DESC LIMIT 1",
                (terminal_target, exclude_id),
            )
            row = await cursor.fetchone()
            return Session.from_row(row) if row else None

    async def count_by_status(self) -> dict[str, int]:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("SELECT status, COUNT(*) FROM sessions GROUP BY status")
            rows = await cursor.fetchall()
            return {status: count for status, count in rows}

    async def delete_ended_before(self, cutoff: str) -> int:
        """Delete ended sessions last active before *cutoff*. Returns count deleted."""
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                "DELETE FROM sessions WHERE status = 'ended' AND last_activity < ?",
                (cutoff,),
            )
            await db.commit()
            return cursor.rowcount
