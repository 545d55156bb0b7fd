"""Entry point for the claude-discord-mirror daemon."""

from __future__ import annotations

import asyncio
import logging
import signal
import sys

from .bot import MirrorBot
from .config import load_config
from .errors import ConfigurationError
from .setup import setup_bridge
from .utils.logger import setup_logging

logger = logging.getLogger(__name__)


async def main() -> None:
    """Start the bot and the bridge daemon."""
    try:
        config = load_config()
    except ConfigurationError as e:
        setup_logging()
        logger.error("Configuration error: %s", e)
        sys.exit(1)
    setup_logging(config.log_level, config.log_file)

    bot = MirrorBot(channel_id=config.channel_id, allowed_user_ids=config.allowed_user_ids)

    async with bot:
        components = await setup_bridge(bot, config)
        if components.api_server is not None:
            await components.api_server.start()

        # Handle signals
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda: asyncio.create_task(bot.close()))

        try:
            await bot.start(config.token)
        finally:
            if components.api_server is not None:
                await components.api_server.stop()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
