"""Per-session single-flight guard for thread creation.

Several events for a brand-new session can arrive at once (session_start,
the first prompt, the first tool call). Only the first may create the
session's thread; the rest must wait for that creation and reuse its result.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from ..errors import ThreadCreationTimeout

logger = logging.getLogger(__name__)

T = TypeVar("T")

THREAD_CREATION_TIMEOUT = 5.0


class ThreadCreationLock:
    """Keyed lock whose holder is a task with a deadline.

    The first :meth:`run` call for a key starts *factory* in a task owned by
    the lock. Later callers for the same key await that same task. The entry
    is removed when the task finishes, fails, or times out.
    """

    def __init__(self, timeout: float = THREAD_CREATION_TIMEOUT) -> None:
        self.timeout = timeout
        self._pending: dict[str, asyncio.Task] = {}

    def is_pending(self, key: str) -> bool:
        return key in self._pending

    async def run(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        """Run *factory* once per key at a time and share its result.

        Raises:
            ThreadCreationTimeout: to every caller, if creation exceeded the
                deadline.
        """
        task = self._pending.get(key)
        if task is None:
            task = asyncio.create_task(self._guarded(key, factory))
            self._pending[key] = task
        else:
            logger.debug("Thread creation for %s already in progress; waiting", key)
        # A cancelled waiter must not cancel the creation others depend on.
        return await asyncio.shield(task)

    async def _guarded(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        try:
            return await asyncio.wait_for(factory(), timeout=self.timeout)
        except TimeoutError:
            logger.error("Thread creation for %s timed out after %.1fs", key, self.timeout)
            raise ThreadCreationTimeout(key, self.timeout) from None
        finally:
            self._pending.pop(key, None)
