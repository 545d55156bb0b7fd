"""claude-code-discord-mirror: mirror Claude Code terminal sessions into Discord threads.

Quick start::

    from claude_mirror import MirrorBot, load_config, setup_bridge

    config = load_config()
    bot = MirrorBot(channel_id=config.channel_id)
    async with bot:
        await setup_bridge(bot, config)
        await bot.start(config.token)

"""

from .bot import MirrorBot
from .bridge.approvals import ApprovalCorrelator
from .bridge.dedup import EchoFilter
from .bridge.injector import TmuxInjector
from .bridge.reaper import StaleSessionReaper
from .bridge.socket_server import SocketServer
from .bridge.thread_lock import ThreadCreationLock
from .bridge.types import ApprovalOutcome, BridgeMessage, EventType, SessionStatus
from .chat.discord_client import DiscordChatClient
from .config import MirrorConfig, load_config
from .daemon import BridgeDaemon
from .database.repository import Session, SessionRepository
from .delivery.pipeline import DeliveryPipeline
from .registry import SessionRegistry
from .setup import BridgeComponents, setup_bridge

__all__ = [
    # Core
    "BridgeDaemon",
    "MirrorBot",
    "MirrorConfig",
    "load_config",
    "BridgeComponents",
    "setup_bridge",
    # Protocol
    "BridgeMessage",
    "EventType",
    "ApprovalOutcome",
    # Sessions
    "Session",
    "SessionStatus",
    "SessionRepository",
    "SessionRegistry",
    "StaleSessionReaper",
    # Components
    "ApprovalCorrelator",
    "DeliveryPipeline",
    "DiscordChatClient",
    "EchoFilter",
    "SocketServer",
    "ThreadCreationLock",
    "TmuxInjector",
]
