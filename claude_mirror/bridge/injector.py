"""Delivers chat replies to the agent's terminal via tmux.

All tmux invocations use create_subprocess_exec (never a shell), so text
typed in Discord is passed as a single literal argument.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from ..errors import InjectionError

logger = logging.getLogger(__name__)

TMUX_TIMEOUT = 5.0


class TerminalInjector(Protocol):
    """What the daemon needs from a terminal backend."""

    async def inject(self, target: str, text: str, socket: str | None = None) -> None: ...

    async def send_key(self, target: str, key: str, socket: str | None = None) -> None: ...

    async def pane_alive(self, target: str, socket: str | None = None) -> bool: ...


class TmuxInjector:
    """Terminal backend built on ``tmux send-keys``."""

    def __init__(self, command: str = "tmux", timeout: float = TMUX_TIMEOUT) -> None:
        self.command = command
        self.timeout = timeout

    async def inject(self, target: str, text: str, socket: str | None = None) -> None:
        """Type *text* literally into the pane, then press Enter.

        Raises:
            InjectionError: if either tmux call fails.
        """
        await self._tmux(socket, "send-keys", "-t", target, "-l", text)
        await self._tmux(socket, "send-keys", "-t", target, "Enter")
        logger.debug("Injected %d chars into %s", len(text), target)

    async def send_key(self, target: str, key: str, socket: str | None = None) -> None:
        """Send a named key such as ``Escape`` or ``C-c``."""
        await self._tmux(socket, "send-keys", "-t", target, key)
        logger.debug("Sent %s to %s", key, target)

    async def pane_alive(self, target: str, socket: str | None = None) -> bool:
        """True if tmux still knows the pane."""
        try:
            await self._tmux(socket, "list-panes", "-t", target)
        except InjectionError:
            return False
        return True

    async def _tmux(self, socket: str | None, *args: str) -> str:
        argv = [self.command]
        if socket:
            argv += ["-S", socket]
        argv += list(args)
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            raise InjectionError(f"{self.command} is not installed") from None
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except TimeoutError:
            proc.kill()
            await proc.wait()
            raise InjectionError(f"{self.command} {args[0]} timed out") from None
        if proc.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()
            raise InjectionError(f"{self.command} {args[0]} failed: {detail or proc.returncode}")
        return stdout.decode("utf-8", errors="replace")
