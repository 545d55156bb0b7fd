"""Discord Bot class."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord.ext import commands

if TYPE_CHECKING:
    from .daemon import BridgeDaemon

logger = logging.getLogger(__name__)


class MirrorBot(commands.Bot):
    """Discord bot that mirrors Claude Code sessions into threads.

    Replies posted in a session thread (a thread whose parent is the
    configured channel) are forwarded to the daemon for terminal injection.
    Messages in the channel itself are ignored, and so are replies from users
    outside ``allowed_user_ids`` when that set is configured.
    """

    def __init__(self, channel_id: int, allowed_user_ids: set[int] | None = None) -> None:
        intents = discord.Intents.default()
        intents.message_content = True
        intents.guilds = True

        super().__init__(
            command_prefix="!",  # Not used, but required
            intents=intents,
        )
        self.channel_id = channel_id
        # None: channel permissions are the only gate
        self.allowed_user_ids = allowed_user_ids
        # Attached by setup_bridge() before the bot starts
        self.daemon: BridgeDaemon | None = None

    async def setup_hook(self) -> None:
        if self.daemon is not None and not self.daemon.running:
            await self.daemon.start()

    async def on_ready(self) -> None:
        logger.info("Logged in as %s (ID: %s)", self.user, self.user.id if self.user else "?")
        logger.info("Mirroring into channel ID: %d", self.channel_id)
        if self.daemon is not None:
            self.daemon.announce_startup()

        # Sync slash commands
        try:
            synced = await self.tree.sync()
            logger.info("Synced %d slash commands", len(synced))
        except Exception:
            logger.exception("Failed to sync slash commands")

    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot or self.daemon is None:
            return
        channel = message.channel
        if not isinstance(channel, discord.Thread) or channel.parent_id != self.channel_id:
            return
        if self.allowed_user_ids is not None and message.author.id not in self.allowed_user_ids:
            logger.warning(
                "Ignoring reply from unauthorized user %s in thread %s",
                message.author.id,
                channel.id,
            )
            return
        delivered = await self.daemon.handle_chat_message(str(channel.id), message.content)
        if delivered:
            try:
                await message.add_reaction("📨")
            except discord.HTTPException:
                logger.debug("Could not react to message %d", message.id)

    async def close(self) -> None:
        if self.daemon is not None:
            await self.daemon.stop()
        await super().close()
