"""Discord implementation of the chat client interface.

Sessions map to threads under one configured text channel. Discord HTTP
errors are translated into the ``ChatError`` family here so the delivery
pipeline can choose a recovery.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import discord

from ..errors import ChatError, DestinationClosedError, MarkupParseError
from .base import Button
from .views import DecisionHandler, DecisionView

if TYPE_CHECKING:
    from discord.ext.commands import Bot

logger = logging.getLogger(__name__)

# Discord JSON error codes
THREAD_ARCHIVED = 50083
INVALID_FORM_BODY = 50035

THREAD_AUTO_ARCHIVE_MINUTES = 10080


def translate_http_error(error: discord.HTTPException) -> ChatError:
    """Map a discord.py HTTP error to the matching ChatError subclass.

    Discord has no dedicated "bad markup" error. Invalid Form Body is raised
    for any field that fails validation, so it only counts as a markup
    failure when the rejected field is the message ``content``; stripping
    the formatting is the one rewrite that can make that body acceptable.
    Other invalid fields (components, embeds) stay generic.
    """
    if error.code == THREAD_ARCHIVED:
        return DestinationClosedError(str(error))
    if error.code == INVALID_FORM_BODY and _content_rejected(error):
        return MarkupParseError(str(error))
    return ChatError(str(error))


def _content_rejected(error: discord.HTTPException) -> bool:
    # discord.py flattens the field errors into lines like "In content: ..."
    return any(line.startswith("In content") for line in error.text.splitlines())


class DiscordChatClient:
    """Sends to the main channel or to per-session threads under it."""

    def __init__(
        self,
        bot: Bot,
        channel_id: int,
        *,
        use_threads: bool = True,
        on_decision: DecisionHandler | None = None,
        allowed_user_ids: set[int] | None = None,
    ) -> None:
        self.bot = bot
        self.channel_id = channel_id
        self.use_threads = use_threads
        self.on_decision = on_decision
        self.allowed_user_ids = allowed_user_ids

    async def send_message(
        self,
        destination_id: str | None,
        text: str,
        buttons: list[Button] | None = None,
    ) -> None:
        channel = await self._resolve(destination_id)
        kwargs: dict[str, Any] = {}
        if buttons and self.on_decision is not None:
            kwargs["view"] = DecisionView(buttons, self.on_decision, self.allowed_user_ids)
        try:
            await channel.send(text, **kwargs)
        except discord.HTTPException as e:
            raise translate_http_error(e) from e

    async def create_thread(self, name: str) -> str | None:
        """Create a thread under the main channel.

        Returns None when threads are disabled or the channel type cannot
        hold threads; callers then post to the main channel.
        """
        if not self.use_threads:
            return None
        channel = await self._resolve(None)
        try:
            if isinstance(channel, discord.TextChannel):
                # Post a starter message first so the thread shows up in the
                # channel timeline, not only in the Threads panel.
                starter = await channel.send(f"🧵 **{name}**")
                thread = await starter.create_thread(
                    name=name,
                    auto_archive_duration=THREAD_AUTO_ARCHIVE_MINUTES,
                )
                logger.info("Created thread %d (%s)", thread.id, name)
                return str(thread.id)
        except discord.HTTPException as e:
            raise translate_http_error(e) from e
        logger.warning(
            "Channel %d does not support threads; posting to the channel instead",
            self.channel_id,
        )
        return None

    async def close_thread(self, thread_id: str) -> None:
        thread = await self._resolve_thread(thread_id)
        try:
            await thread.edit(archived=True, locked=True)
        except discord.HTTPException as e:
            raise translate_http_error(e) from e

    async def reopen_thread(self, thread_id: str) -> None:
        thread = await self._resolve_thread(thread_id)
        try:
            await thread.edit(archived=False, locked=False)
        except discord.HTTPException as e:
            raise translate_http_error(e) from e

    async def _resolve(self, destination_id: str | None) -> Any:
        await self.bot.wait_until_ready()
        target = self.channel_id if destination_id is None else int(destination_id)
        channel = self.bot.get_channel(target)
        if channel is not None:
            return channel
        try:
            # Archived threads are not cached.
            return await self.bot.fetch_channel(target)
        except discord.HTTPException as e:
            raise ChatError(f"channel {target} unavailable: {e}") from e

    async def _resolve_thread(self, thread_id: str) -> discord.Thread:
        channel = await self._resolve(thread_id)
        if not isinstance(channel, discord.Thread):
            raise ChatError(f"channel {thread_id} is not a thread")
        return channel
