"""Echo suppression for chat-originated input.

Text typed in a Discord thread is injected into the terminal; the agent then
reports that same text back as ``user_input``. Recording the injection lets
the daemon recognise the echo and not mirror it a second time.
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)

ECHO_WINDOW_SECONDS = 10.0


def _normalize_text(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


class EchoFilter:
    """Remembers recently injected text per session for a fixed window.

    Entries expire by time only; a match does not consume the entry, so the
    same echo reported twice within the window is suppressed both times.
    """

    def __init__(
        self,
        window: float = ECHO_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.window = window
        self._clock = clock
        self._entries: dict[tuple[str, str], float] = {}

    def record(self, session_id: str, text: str) -> None:
        self._prune()
        self._entries[(session_id, _normalize_text(text))] = self._clock() + self.window

    def is_echo(self, session_id: str, text: str) -> bool:
        self._prune()
        key = (session_id, _normalize_text(text))
        if key in self._entries:
            logger.debug("Suppressing echo of chat input for session %s", session_id)
            return True
        return False

    def __len__(self) -> int:
        self._prune()
        return len(self._entries)

    def _prune(self) -> None:
        now = self._clock()
        expired = [key for key, expiry in self._entries.items() if expiry <= now]
        for key in expired:
            del self._entries[key]
