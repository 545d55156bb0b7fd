"""Chat platform interface used by the delivery pipeline and the daemon."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol


class ButtonStyle(Enum):
    PRIMARY = "primary"
    SUCCESS = "success"
    DANGER = "danger"
    SECONDARY = "secondary"


@dataclass(frozen=True)
class Button:
    """An inline button; *custom_id* is routed back to the daemon when pressed."""

    label: str
    custom_id: str
    style: ButtonStyle = ButtonStyle.SECONDARY


class ChatClient(Protocol):
    """Outbound operations on the chat platform.

    A ``destination_id`` of None addresses the main channel. Every method
    raises :class:`claude_mirror.errors.ChatError` (or a subclass) on failure.
    """

    async def send_message(
        self,
        destination_id: str | None,
        text: str,
        buttons: list[Button] | None = None,
    ) -> None: ...

    async def create_thread(self, name: str) -> str | None:
        """Create a thread and return its id, or None if threads are unsupported."""
        ...

    async def close_thread(self, thread_id: str) -> None: ...

    async def reopen_thread(self, thread_id: str) -> None: ...
