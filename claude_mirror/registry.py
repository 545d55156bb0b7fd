"""Session registry: the single writer of session state.

Every inbound event goes through :meth:`SessionRegistry.ensure_session`
before anything else happens, so an ended session is reactivated and its
activity timestamp refreshed before the event is acted on.

All mutations hold one ``asyncio.Lock`` and are committed to SQLite before
the call returns.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from .bridge.types import SessionStatus, to_iso
from .database.repository import Session, SessionRepository

logger = logging.getLogger(__name__)


@dataclass
class EnsureResult:
    """Outcome of :meth:`SessionRegistry.ensure_session`."""

    session: Session
    created: bool = False
    reactivated: bool = False


class SessionRegistry:
    """Persisted registry of agent sessions.

    Designed to be shared by every component of one daemon instance.
    """

    def __init__(self, repo: SessionRepository) -> None:
        self._repo = repo
        self._lock = asyncio.Lock()

    async def ensure_session(
        self,
        session_id: str,
        *,
        hostname: str | None = None,
        project_dir: str | None = None,
        terminal_target: str | None = None,
        terminal_socket: str | None = None,
        now: datetime | None = None,
    ) -> EnsureResult:
        """Create, reactivate, or simply touch a session.

        Repeated calls with the same id never create a second session. When
        the event carries a terminal target different from the stored one the
        stored target is replaced; panes move when the user rearranges them.
        """
        stamp = to_iso(now or datetime.now(UTC))
        async with self._lock:
            created = await self._repo.create(
                session_id,
                now=stamp,
                hostname=hostname,
                project_dir=project_dir,
                terminal_target=terminal_target,
                terminal_socket=terminal_socket,
            )
            if created:
                logger.info(
                    "Session %s registered (host=%s, project=%s, terminal=%s)",
                    session_id,
                    hostname,
                    project_dir,
                    terminal_target,
                )
                session = await self._require(session_id)
                return EnsureResult(session=session, created=True)

            reactivated = await self._reactivate_locked(session_id)
            session = await self._require(session_id)

            if terminal_target and terminal_target != session.terminal_target:
                await self._repo.set_terminal(session_id, terminal_target, terminal_socket)
                logger.info(
                    "Session %s terminal target refreshed: %s -> %s",
                    session_id,
                    session.terminal_target,
                    terminal_target,
                )

            await self._repo.touch(session_id, stamp)
            session = await self._require(session_id)
            return EnsureResult(session=session, reactivated=reactivated)

    async def bind_thread(self, session_id: str, thread_id: str) -> str | None:
        """Bind *thread_id* to the session if it has no thread yet.

        Returns the effective binding. Binding a second, different thread is
        an anomaly: it is logged and the existing binding is kept.
        """
        async with self._lock:
            session = await self._repo.get(session_id)
            if session is None:
                logger.warning("Cannot bind thread %s: unknown session %s", thread_id, session_id)
                return None
            if session.thread_id == thread_id:
                return thread_id
            if session.thread_id is not None:
                logger.warning(
                    "Session %s already bound to thread %s; ignoring thread %s",
                    session_id,
                    session.thread_id,
                    thread_id,
                )
                return session.thread_id
            await self._repo.set_thread(session_id, thread_id)
            logger.info("Session %s bound to thread %s", session_id, thread_id)
            return thread_id

    async def mark_ended(self, session_id: str) -> bool:
        """Mark a session ended. Returns False if the id is unknown."""
        async with self._lock:
            changed = await self._repo.set_status(session_id, SessionStatus.ENDED)
        if changed:
            logger.info("Session %s ended", session_id)
        return changed

    async def end_if_idle(self, session_id: str, last_activity: str) -> bool:
        """End the session only if it is still active and untouched.

        *last_activity* is the timestamp the caller saw when it decided the
        session was idle. Any event recorded since then keeps the session
        alive. Returns whether the session was ended.
        """
        async with self._lock:
            session = await self._repo.get(session_id)
            if session is None or not session.is_active:
                return False
            if session.last_activity != last_activity:
                return False
            await self._repo.set_status(session_id, SessionStatus.ENDED)
        logger.info("Session %s ended after inactivity", session_id)
        return True

    async def reactivate(self, session_id: str) -> bool:
        """Return an ended session to active. False if unknown or already active."""
        async with self._lock:
            return await self._reactivate_locked(session_id)

    async def touch(self, session_id: str, at: datetime | None = None) -> None:
        async with self._lock:
            await self._repo.touch(session_id, to_iso(at or datetime.now(UTC)))

    async def purge_ended(self, older_than_days: int, now: datetime | None = None) -> int:
        """Delete sessions that ended more than *older_than_days* ago."""
        cutoff = (now or datetime.now(UTC)) - timedelta(days=older_than_days)
        async with self._lock:
            deleted = await self._repo.delete_ended_before(to_iso(cutoff))
        if deleted:
            logger.info("Purged %d ended session(s) older than %d days", deleted, older_than_days)
        return deleted

    # -- queries ---------------------------------------------------------

    async def get(self, session_id: str) -> Session | None:
        return await self._repo.get(session_id)

    async def get_by_thread(self, thread_id: str) -> Session | None:
        return await self._repo.get_by_thread(thread_id)

    async def list_active(self) -> list[Session]:
        return await self._repo.list_active()

    async def stale_candidates(
        self,
        threshold_hours: float,
        now: datetime | None = None,
    ) -> list[Session]:
        """Active sessions with no activity for longer than *threshold_hours*."""
        cutoff = (now or datetime.now(UTC)) - timedelta(hours=threshold_hours)
        return await self._repo.list_inactive_since(to_iso(cutoff))

    async def terminal_owned_by_other(self, terminal_target: str, exclude_id: str) -> str | None:
        """Id of another active session using *terminal_target*, if any."""
        other = await self._repo.find_active_by_terminal(terminal_target, exclude_id)
        return other.id if other else None

    async def stats(self) -> dict[str, int]:
        counts = await self._repo.count_by_status()
        return {
            "active": counts.get(SessionStatus.ACTIVE.value, 0),
            "ended": counts.get(SessionStatus.ENDED.value, 0),
        }

    async def _reactivate_locked(self, session_id: str) -> bool:
        # Caller holds self._lock
        session = await self._repo.get(session_id)
        if session is None or session.is_active:
            return False
        await self._repo.set_status(session_id, SessionStatus.ACTIVE)
        logger.info("Session %s reactivated by new activity", session_id)
        return True

    async def _require(self, session_id: str) -> Session:
        session = await self._repo.get(session_id)
        if session is None:
            raise RuntimeError(f"Session {session_id} missing after write")
        return session
