"""One-call wiring of the bridge daemon onto a bot.

Builds the database, registry, Discord client, daemon, reaper and slash
commands from a :class:`MirrorConfig` and attaches them to the bot, so the
entry point does not wire each component by hand.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .bot import MirrorBot
    from .bridge.reaper import StaleSessionReaper
    from .cogs.mirror_commands import MirrorCommandsCog
    from .config import MirrorConfig
    from .daemon import BridgeDaemon
    from .database.repository import SessionRepository
    from .ext.api_server import StatusServer
    from .registry import SessionRegistry

logger = logging.getLogger(__name__)


@dataclass
class BridgeComponents:
    """References to the initialized bridge components."""

    daemon: BridgeDaemon
    registry: SessionRegistry
    session_repo: SessionRepository
    reaper: StaleSessionReaper
    commands: MirrorCommandsCog
    api_server: StatusServer | None = None


async def setup_bridge(bot: MirrorBot, config: MirrorConfig) -> BridgeComponents:
    """Initialize every component and register the reaper and command Cogs.

    The daemon is attached to ``bot.daemon``; the bot starts it in
    ``setup_hook`` and stops it in ``close``.
    """
    from .bridge.injector import TmuxInjector
    from .bridge.reaper import StaleSessionReaper
    from .chat.discord_client import DiscordChatClient
    from .cogs.mirror_commands import MirrorCommandsCog
    from .daemon import BridgeDaemon
    from .database.models import init_db
    from .database.repository import SessionRepository
    from .delivery.pipeline import DeliveryPipeline
    from .ext.api_server import StatusServer
    from .registry import SessionRegistry

    os.makedirs(os.path.dirname(config.db_path) or ".", exist_ok=True)
    await init_db(config.db_path)
    session_repo = SessionRepository(config.db_path)
    registry = SessionRegistry(session_repo)

    client = DiscordChatClient(
        bot,
        config.channel_id,
        use_threads=config.use_threads,
        allowed_user_ids=config.allowed_user_ids,
    )
    pipeline = DeliveryPipeline(client, rate_limit=config.rate_limit)
    injector = TmuxInjector()

    daemon = BridgeDaemon(
        registry=registry,
        client=client,
        injector=injector,
        socket_path=config.socket_path,
        pipeline=pipeline,
        verbose=config.verbose,
        use_threads=config.use_threads,
        chunk_size=config.chunk_size,
        approval_timeout=config.approval_timeout,
    )
    client.on_decision = daemon.handle_decision
    bot.daemon = daemon

    reaper = StaleSessionReaper(
        bot,
        registry=registry,
        pipeline=pipeline,
        injector=injector,
        threshold_hours=config.stale_session_hours,
        interval_minutes=config.reaper_interval_minutes,
        purge_after_days=config.purge_after_days,
    )
    await bot.add_cog(reaper)

    commands_cog = MirrorCommandsCog(bot, daemon, allowed_user_ids=config.allowed_user_ids)
    await bot.add_cog(commands_cog)

    api_server = None
    if config.api_port:
        api_server = StatusServer(daemon, port=config.api_port, api_secret=config.api_secret)

    logger.info(
        "Bridge ready (socket=%s, db=%s, threads=%s, verbose=%s)",
        config.socket_path,
        config.db_path,
        config.use_threads,
        config.verbose,
    )
    return BridgeComponents(
        daemon=daemon,
        registry=registry,
        session_repo=session_repo,
        reaper=reaper,
        commands=commands_cog,
        api_server=api_server,
    )
