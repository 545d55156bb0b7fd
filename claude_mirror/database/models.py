"""SQLite database schema and initialization."""

from __future__ import annotations

import contextlib
import logging

import aiosqlite

logger = logging.getLogger(__name__)

# Timestamps are ISO-8601 UTC strings written by the application, so that
# they compare lexically and match the envelope timestamps.
SCHEMA = """
CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    status TEXT NOT NULL DEFAULT 'active',
    thread_id TEXT,
    hostname TEXT,
    project_dir TEXT,
    terminal_target TEXT,
    terminal_socket TEXT,
    created_at TEXT NOT NULL,
    last_activity TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_sessions_status ON sessions(status);
CREATE INDEX IF NOT EXISTS idx_sessions_thread ON sessions(thread_id);
CREATE INDEX IF NOT EXISTS idx_sessions_last_activity ON sessions(last_activity);
"""

# Migrations for databases created by earlier releases.
_MIGRATIONS = [
    "ALTER TABLE sessions ADD COLUMN terminal_socket TEXT",
    "CREATE INDEX IF NOT EXISTS idx_sessions_last_activity ON sessions(last_activity)",
]


async def init_db(db_path: str) -> None:
    """Initialize the database with the schema.

    Migration statements run after the schema and are ignored when the
    column or index already exists.
    """
    async with aiosqlite.connect(db_path) as db:
        await db.executescript(SCHEMA)
        for stmt in _MIGRATIONS:
            with contextlib.suppress(Exception):
                await db.execute(stmt)
        await db.commit()
    logger.info("Database initialized at %s", db_path)
