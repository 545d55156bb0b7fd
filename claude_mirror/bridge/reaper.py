"""StaleSessionReaper: retires sessions whose terminal has gone away.

Design:
- A ``discord.ext.tasks`` loop wakes every few minutes and calls
  :meth:`StaleSessionReaper.sweep`.
- A session is a candidate when it is active and has seen no event for
  longer than the threshold. Inactivity alone is not enough: the candidate is
  reclaimed only when its tmux pane no longer exists, or when another active
  session has since taken over the same pane.
- Sessions that never reported a tmux pane cannot be checked and are left
  alone.
- Reclaiming first ends the session, but only if no event touched it since
  the sweep read it. Then the notice is posted and delivered before the
  thread is closed. A session touched mid-sweep is left active.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from discord.ext import commands, tasks

from ..chat.formatting import format_stale_session_end
from ..errors import ChatError

if TYPE_CHECKING:
    from ..database.repository import Session
    from ..delivery.pipeline import DeliveryPipeline
    from ..registry import SessionRegistry
    from .injector import TerminalInjector

logger = logging.getLogger(__name__)

STALE_THRESHOLD_HOURS = 72
SWEEP_INTERVAL_MINUTES = 5
PURGE_AFTER_DAYS = 7


class StaleSessionReaper(commands.Cog):
    """Cog running the periodic stale-session sweep.

    Args:
        bot: The Discord bot instance.
        registry: Session registry (the reaper's only write path).
        pipeline: Delivery pipeline used for the notice.
        injector: Terminal backend used to check whether a pane is alive.
    """

    def __init__(
        self,
        bot: commands.Bot,
        *,
        registry: SessionRegistry,
        pipeline: DeliveryPipeline,
        injector: TerminalInjector,
        threshold_hours: float = STALE_THRESHOLD_HOURS,
        interval_minutes: float = SWEEP_INTERVAL_MINUTES,
        purge_after_days: int = PURGE_AFTER_DAYS,
    ) -> None:
        self.bot = bot
        self.registry = registry
        self.pipeline = pipeline
        self.injector = injector
        self.threshold_hours = threshold_hours
        self.purge_after_days = purge_after_days
        self._sweep_loop.change_interval(minutes=interval_minutes)

    async def cog_load(self) -> None:
        self._sweep_loop.start()
        logger.info(
            "StaleSessionReaper loaded, sweeping every %.0f min (threshold %.0fh)",
            self._sweep_loop.minutes,
            self.threshold_hours,
        )

    def cog_unload(self) -> None:
        self._sweep_loop.cancel()
        logger.info("StaleSessionReaper unloaded, sweep loop stopped")

    @tasks.loop(minutes=SWEEP_INTERVAL_MINUTES)
    async def _sweep_loop(self) -> None:
        try:
            await self.sweep()
        except Exception:
            logger.exception("Stale session sweep failed")

    @_sweep_loop.before_loop
    async def _before_sweep_loop(self) -> None:
        await self.bot.wait_until_ready()

    async def sweep(self, now: datetime | None = None) -> list[str]:
        """Run one sweep. Returns the ids of the sessions reclaimed."""
        now = now or datetime.now(UTC)
        candidates = await self.registry.stale_candidates(self.threshold_hours, now=now)
        reclaimed: list[str] = []
        for session in candidates:
            reason = await self._reclaim_reason(session)
            if reason is None:
                continue
            try:
                ended = await self._reclaim(session, reason)
            except Exception:
                logger.exception("Failed to reclaim stale session %s", session.id)
                continue
            if ended:
                reclaimed.append(session.id)

        if reclaimed:
            logger.info("Reclaimed %d stale session(s): %s", len(reclaimed), reclaimed)
        await self.registry.purge_ended(self.purge_after_days, now=now)
        return reclaimed

    async def _reclaim_reason(self, session: Session) -> str | None:
        if not session.terminal_target:
            logger.debug("Stale session %s has no tmux pane recorded; skipping", session.id)
            return None
        if not await self.injector.pane_alive(session.terminal_target, session.terminal_socket):
            return f"tmux pane `{session.terminal_target}` no longer exists."
        owner = await self.registry.terminal_owned_by_other(session.terminal_target, session.id)
        if owner is not None:
            return f"tmux pane `{session.terminal_target}` is now used by session `{owner[:8]}`."
        logger.debug("Stale session %s still has a live pane; keeping it", session.id)
        return None

    async def _reclaim(self, session: Session, reason: str) -> bool:
        if not await self.registry.end_if_idle(session.id, session.last_activity):
            logger.info("Stale session %s was touched during the sweep; keeping it", session.id)
            return False
        logger.info("Reclaimed stale session %s: %s", session.id, reason)
        if session.thread_id is not None:
            self.pipeline.submit(session.thread_id, format_stale_session_end(reason))
            await self.pipeline.flush(session.thread_id)
            try:
                await self.pipeline.client.close_thread(session.thread_id)
            except ChatError as e:
                logger.warning("Could not close thread %s: %s", session.thread_id, e)
        return True
