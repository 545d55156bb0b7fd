"""Slash commands for inspecting and controlling mirrored sessions.

- /status: daemon counters (sessions, hook clients, queue, approvals)
- /sessions: active sessions with their threads
- /ping: gateway latency
- /abort: interrupt and end a session, after a confirmation press
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from ..bridge.types import parse_timestamp
from ..chat.formatting import short_id

if TYPE_CHECKING:
    from ..daemon import BridgeDaemon
    from ..database.repository import Session

logger = logging.getLogger(__name__)

COLOR_INFO = 0x5865F2
COLOR_SUCCESS = 0x57F287
COLOR_ERROR = 0xED4245

# Discord caps an embed at 25 fields
MAX_SESSION_FIELDS = 25
ABORT_CONFIRM_TIMEOUT = 60.0

_UNAUTHORIZED_MSG = "You are not authorized to use this command."


def _is_allowed(allowed_user_ids: set[int] | None, user_id: int) -> bool:
    return allowed_user_ids is None or user_id in allowed_user_ids


def _format_uptime(seconds: float) -> str:
    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def _last_seen(session: Session) -> str:
    try:
        stamp = parse_timestamp(session.last_activity)
    except ValueError:
        return session.last_activity
    return f"<t:{int(stamp.timestamp())}:R>"


class AbortConfirmView(discord.ui.View):
    """🛑 Yes / ❌ Cancel buttons guarding ``/abort``.

    Aborting can take a few seconds (the end notice is delivered before the
    thread closes), so the press is acknowledged first and the message is
    edited again once the daemon is done.
    """

    def __init__(
        self,
        daemon: BridgeDaemon,
        session_id: str,
        allowed_user_ids: set[int] | None = None,
        timeout: float = ABORT_CONFIRM_TIMEOUT,
    ) -> None:
        super().__init__(timeout=timeout)
        self._daemon = daemon
        self._session_id = session_id
        self._allowed_user_ids = allowed_user_ids

    async def _reject_unauthorized(self, interaction: discord.Interaction) -> bool:
        if _is_allowed(self._allowed_user_ids, interaction.user.id):
            return False
        logger.warning(
            "Unauthorized abort press for session %s by user %s",
            self._session_id,
            interaction.user.id,
        )
        await interaction.response.send_message(_UNAUTHORIZED_MSG, ephemeral=True)
        return True

    @discord.ui.button(label="🛑 Yes, abort", style=discord.ButtonStyle.danger)
    async def confirm_button(
        self, interaction: discord.Interaction, button: discord.ui.Button
    ) -> None:
        if await self._reject_unauthorized(interaction):
            return
        self.stop()
        await interaction.response.edit_message(
            content=f"⏳ Aborting session `{self._session_id}`...", view=None
        )
        if await self._daemon.abort_session(self._session_id):
            content = f"🛑 Session `{self._session_id}` aborted."
        else:
            content = f"❌ Session `{self._session_id}` is no longer active."
        await interaction.edit_original_response(content=content)

    @discord.ui.button(label="❌ Cancel", style=discord.ButtonStyle.secondary)
    async def cancel_button(
        self, interaction: discord.Interaction, button: discord.ui.Button
    ) -> None:
        if await self._reject_unauthorized(interaction):
            return
        self.stop()
        await interaction.response.edit_message(content="✅ Abort cancelled.", view=None)


class MirrorCommandsCog(commands.Cog):
    """Cog exposing daemon status and session control as slash commands."""

    def __init__(
        self,
        bot: commands.Bot,
        daemon: BridgeDaemon,
        allowed_user_ids: set[int] | None = None,
    ) -> None:
        self.bot = bot
        self.daemon = daemon
        self._allowed_user_ids = allowed_user_ids

    async def _reject_unauthorized(self, interaction: discord.Interaction) -> bool:
        if _is_allowed(self._allowed_user_ids, interaction.user.id):
            return False
        logger.warning("Unauthorized slash command by user %s", interaction.user.id)
        await interaction.response.send_message(_UNAUTHORIZED_MSG, ephemeral=True)
        return True

    @app_commands.command(name="ping", description="Check that the mirror bot is responsive")
    async def ping(self, interaction: discord.Interaction) -> None:
        if await self._reject_unauthorized(interaction):
            return
        latency = self.bot.latency
        # latency is nan until the first heartbeat
        if math.isfinite(latency):
            text = f"🏓 Pong! {round(latency * 1000)}ms"
        else:
            text = "🏓 Pong!"
        await interaction.response.send_message(text, ephemeral=True)

    @app_commands.command(name="status", description="Show the mirror daemon's status")
    async def status(self, interaction: discord.Interaction) -> None:
        if await self._reject_unauthorized(interaction):
            return
        status = await self.daemon.status()
        running = status["running"]
        embed = discord.Embed(
            title="📊 Mirror Status",
            description="🟢 Running" if running else "🔴 Stopped",
            color=COLOR_SUCCESS if running else COLOR_ERROR,
        )
        embed.add_field(name="Active sessions", value=str(status["active_sessions"]))
        embed.add_field(name="Ended sessions", value=str(status["ended_sessions"]))
        embed.add_field(name="Hook clients", value=str(status["clients"]))
        embed.add_field(name="Pending approvals", value=str(status["pending_approvals"]))
        embed.add_field(name="Queued messages", value=str(status["queued_messages"]))
        embed.add_field(name="Dropped messages", value=str(status["dropped_messages"]))
        embed.set_footer(text=f"Uptime: {_format_uptime(status['uptime_seconds'])}")
        await interaction.response.send_message(embed=embed)

    @app_commands.command(name="sessions", description="List active Claude Code sessions")
    async def sessions_list(self, interaction: discord.Interaction) -> None:
        if await self._reject_unauthorized(interaction):
            return
        sessions = await self.daemon.registry.list_active()
        if not sessions:
            embed = discord.Embed(
                title="📋 Sessions",
                description="📭 No active sessions.",
                color=COLOR_INFO,
            )
            await interaction.response.send_message(embed=embed)
            return

        embed = discord.Embed(title=f"📋 Active Sessions ({len(sessions)})", color=COLOR_INFO)
        for session in sessions[:MAX_SESSION_FIELDS]:
            name = f"`{short_id(session.id)}` {session.hostname or 'unknown host'}"
            parts = []
            if session.project_dir:
                parts.append(f"`{session.project_dir.rstrip('/').rsplit('/', 1)[-1]}`")
            if session.thread_id:
                parts.append(f"<#{session.thread_id}>")
            parts.append(f"active {_last_seen(session)}")
            embed.add_field(name=name, value=" | ".join(parts), inline=False)
        if len(sessions) > MAX_SESSION_FIELDS:
            embed.set_footer(text=f"Showing {MAX_SESSION_FIELDS} of {len(sessions)}")
        await interaction.response.send_message(embed=embed)

    @app_commands.command(name="abort", description="Interrupt and end a Claude Code session")
    @app_commands.describe(session_id="Session id or prefix (defaults to this thread's session)")
    async def abort(
        self,
        interaction: discord.Interaction,
        session_id: str | None = None,
    ) -> None:
        if await self._reject_unauthorized(interaction):
            return

        if session_id is None:
            if not isinstance(interaction.channel, discord.Thread):
                await interaction.response.send_message(
                    "Run /abort inside a session thread, or pass a session id.",
                    ephemeral=True,
                )
                return
            session = await self.daemon.registry.get_by_thread(str(interaction.channel.id))
        else:
            session = await self._find_active(session_id.strip())

        if session is None:
            await interaction.response.send_message(
                "❌ No matching active session.", ephemeral=True
            )
            return

        view = AbortConfirmView(self.daemon, session.id, self._allowed_user_ids)
        await interaction.response.send_message(
            f"⚠️ **Abort session?**\n"
            f"This sends Ctrl-C to the terminal and ends session `{session.id}`.",
            view=view,
        )

    async def _find_active(self, ref: str) -> Session | None:
        """Resolve a full id or a unique id prefix to an active session."""
        session = await self.daemon.registry.get(ref)
        if session is not None:
            return session if session.is_active else None
        if not ref:
            return None
        matches = [s for s in await self.daemon.registry.list_active() if s.id.startswith(ref)]
        return matches[0] if len(matches) == 1 else None
