"""Ordered, rate-limited, retrying delivery of messages to the chat platform.

Each destination (a thread, or the main channel) has its own FIFO queue and
at most one worker draining it, so messages for one thread arrive in the
order they were submitted. Every send, across all destinations, first passes
a shared rate limiter.

Failure handling per item:

- Thread closed: reopen it, post a notice, resend once.
- Markup rejected: strip formatting and resend once as plain text.
- Anything else (or a failed recovery): retry with exponential backoff,
  re-queued at the front of its queue, up to ``max_retries`` times.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field

from ..chat.base import Button, ChatClient
from ..chat.formatting import strip_markdown
from ..errors import ChatError, DestinationClosedError, MarkupParseError

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
BACKOFF_BASE_SECONDS = 1.0
THREAD_REOPENED_NOTICE = "📂 Thread reopened"


@dataclass
class QueueItem:
    """A message waiting to be delivered."""

    destination_id: str | None
    text: str
    buttons: list[Button] | None = None
    attempts: int = 0
    created_at: float = field(default_factory=time.monotonic)
    reopen_attempted: bool = False
    plain_text: bool = False


class RateLimiter:
    """Spaces calls at least ``1 / rate`` seconds apart."""

    def __init__(self, rate: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.interval = 1.0 / rate if rate > 0 else 0.0
        self._clock = clock
        self._lock = asyncio.Lock()
        self._next_allowed = 0.0

    async def acquire(self) -> None:
        async with self._lock:
            wait = self._next_allowed - self._clock()
            if wait > 0:
                await asyncio.sleep(wait)
            self._next_allowed = self._clock() + self.interval


class DeliveryPipeline:
    """Per-destination queues drained by one worker task each."""

    def __init__(
        self,
        client: ChatClient,
        *,
        rate_limit: float = 1.0,
        max_retries: int = MAX_RETRIES,
        backoff_base: float = BACKOFF_BASE_SECONDS,
        on_dropped: Callable[[QueueItem, Exception], None] | None = None,
    ) -> None:
        self.client = client
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.on_dropped = on_dropped
        self.dropped = 0
        self._limiter = RateLimiter(rate_limit)
        self._queues: dict[str | None, deque[QueueItem]] = {}
        self._workers: dict[str | None, asyncio.Task] = {}

    def submit(
        self,
        destination_id: str | None,
        text: str,
        buttons: list[Button] | None = None,
    ) -> QueueItem:
        """Enqueue a message and make sure its destination's worker is running."""
        item = QueueItem(destination_id=destination_id, text=text, buttons=buttons)
        self._queues.setdefault(destination_id, deque()).append(item)
        if destination_id not in self._workers:
            self._workers[destination_id] = asyncio.create_task(
                self._drain(destination_id),
                name=f"delivery:{destination_id or 'main'}",
            )
        return item

    async def flush(self, destination_id: str | None) -> None:
        """Wait until everything queued for *destination_id* has been handled."""
        while (worker := self._workers.get(destination_id)) is not None:
            await asyncio.shield(worker)

    async def flush_all(self) -> None:
        while self._workers:
            await asyncio.gather(
                *(asyncio.shield(w) for w in list(self._workers.values())),
                return_exceptions=True,
            )

    async def close(self) -> None:
        """Cancel all workers; undelivered items are discarded."""
        workers = list(self._workers.values())
        for worker in workers:
            worker.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        pending = self.queue_depth()
        if pending:
            logger.warning("Delivery pipeline closed with %d undelivered message(s)", pending)
        self._queues.clear()
        self._workers.clear()

    def queue_depth(self) -> int:
        """Messages waiting across all destinations."""
        return sum(len(q) for q in self._queues.values())

    def pending_for(self, destination_id: str | None) -> int:
        return len(self._queues.get(destination_id, ()))

    # -- worker ----------------------------------------------------------

    async def _drain(self, key: str | None) -> None:
        queue = self._queues[key]
        try:
            while queue:
                item = queue.popleft()
                try:
                    await self._deliver(item)
                except ChatError as e:
                    if item.attempts < self.max_retries:
                        delay = self.backoff_base * 2**item.attempts
                        item.attempts += 1
                        logger.warning(
                            "Send to %s failed (%s); retry %d/%d in %.1fs",
                            key or "main channel",
                            e,
                            item.attempts,
                            self.max_retries,
                            delay,
                        )
                        queue.appendleft(item)
                        await asyncio.sleep(delay)
                    else:
                        self._drop(item, e)
                except Exception as e:
                    logger.exception("Unexpected error delivering to %s", key or "main channel")
                    self._drop(item, e)
        finally:
            self._workers.pop(key, None)
            if not queue:
                self._queues.pop(key, None)

    async def _deliver(self, item: QueueItem) -> None:
        """Send *item*, applying each one-shot recovery at most once.

        Recoveries may chain in either order (a reopened thread can still
        reject the markup, a plain-text resend can hit a closed thread).
        Only a failure whose recovery is already spent reaches the caller.
        """
        while True:
            try:
                await self._send(item)
                return
            except DestinationClosedError:
                if item.destination_id is None or item.reopen_attempted:
                    raise
                item.reopen_attempted = True
                await self._reopen(item.destination_id)
            except MarkupParseError:
                if item.plain_text:
                    raise
                item.plain_text = True
                logger.warning(
                    "Formatting rejected for message to %s; resending as plain text",
                    item.destination_id or "main channel",
                )

    async def _reopen(self, thread_id: str) -> None:
        logger.info("Thread %s is closed; reopening before resend", thread_id)
        try:
            await self.client.reopen_thread(thread_id)
        except ChatError as e:
            logger.error("Failed to reopen thread %s: %s", thread_id, e)
            raise
        await self._limiter.acquire()
        await self.client.send_message(thread_id, THREAD_REOPENED_NOTICE)

    async def _send(self, item: QueueItem) -> None:
        await self._limiter.acquire()
        text = strip_markdown(item.text) if item.plain_text else item.text
        await self.client.send_message(item.destination_id, text, item.buttons)

    def _drop(self, item: QueueItem, error: Exception) -> None:
        self.dropped += 1
        logger.error(
            "Dropping message to %s after %d attempt(s): %s",
            item.destination_id or "main channel",
            item.attempts + 1,
            error,
        )
        if self.on_dropped is not None:
            self.on_dropped(item, error)
