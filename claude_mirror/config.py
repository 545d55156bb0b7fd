"""Configuration loaded from the environment (and an optional .env file)."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_DIR = "~/.config/claude-discord-mirror"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass
class MirrorConfig:
    """Settings for one daemon process."""

    token: str
    channel_id: int
    socket_path: str = f"{CONFIG_DIR}/bridge.sock"
    db_path: str = f"{CONFIG_DIR}/sessions.db"
    stale_session_hours: float = 72
    rate_limit: float = 1.0
    approval_timeout: float = 300
    verbose: bool = True
    use_threads: bool = True
    chunk_size: int = 1900
    reaper_interval_minutes: float = 5
    purge_after_days: int = 7
    api_port: int = 0
    api_secret: str | None = None
    allowed_user_ids: set[int] | None = None
    log_level: str = "INFO"
    log_file: str | None = None

    def __post_init__(self) -> None:
        self.socket_path = os.path.expanduser(self.socket_path)
        self.db_path = os.path.expanduser(self.db_path)
        if self.log_file:
            self.log_file = os.path.expanduser(self.log_file)


def _get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    if raw in _TRUE:
        return True
    if raw in _FALSE:
        return False
    raise ConfigurationError(f"{name} must be a boolean (got {raw!r})")


def _get_number(name: str, default: float, cast: type = float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number (got {raw!r})") from None
    if value < 0:
        raise ConfigurationError(f"{name} must not be negative (got {raw!r})")
    return value


def _get_user_ids(name: str) -> set[int] | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    ids = set()
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        if not part.isdigit():
            raise ConfigurationError(f"{name} must be comma-separated user ids (got {part!r})")
        ids.add(int(part))
    return ids or None


def load_config() -> MirrorConfig:
    """Load and validate configuration from the environment.

    Raises:
        ConfigurationError: if a required value is missing or a value is malformed.
    """
    load_dotenv()

    token = os.getenv("DISCORD_BOT_TOKEN", "")
    if not token:
        raise ConfigurationError("DISCORD_BOT_TOKEN is required")

    channel_raw = os.getenv("DISCORD_CHANNEL_ID", "").strip()
    if not channel_raw:
        raise ConfigurationError("DISCORD_CHANNEL_ID is required")
    if not channel_raw.isdigit():
        raise ConfigurationError(f"DISCORD_CHANNEL_ID must be numeric (got {channel_raw!r})")

    rate_limit = _get_number("MIRROR_RATE_LIMIT", 1.0)
    if rate_limit == 0:
        raise ConfigurationError("MIRROR_RATE_LIMIT must be greater than zero")

    return MirrorConfig(
        token=token,
        channel_id=int(channel_raw),
        socket_path=os.getenv("MIRROR_SOCKET_PATH") or f"{CONFIG_DIR}/bridge.sock",
        db_path=os.getenv("MIRROR_DB_PATH") or f"{CONFIG_DIR}/sessions.db",
        stale_session_hours=_get_number("MIRROR_STALE_SESSION_HOURS", 72),
        rate_limit=rate_limit,
        approval_timeout=_get_number("MIRROR_APPROVAL_TIMEOUT", 300),
        verbose=_get_bool("MIRROR_VERBOSE", True),
        use_threads=_get_bool("MIRROR_USE_THREADS", True),
        chunk_size=int(_get_number("MIRROR_CHUNK_SIZE", 1900, int)),
        reaper_interval_minutes=_get_number("MIRROR_REAPER_INTERVAL_MINUTES", 5),
        purge_after_days=int(_get_number("MIRROR_PURGE_AFTER_DAYS", 7, int)),
        api_port=int(_get_number("MIRROR_API_PORT", 0, int)),
        api_secret=os.getenv("MIRROR_API_SECRET") or None,
        allowed_user_ids=_get_user_ids("DISCORD_ALLOWED_USER_IDS"),
        log_level=os.getenv("MIRROR_LOG_LEVEL", "INFO").upper(),
        log_file=os.getenv("MIRROR_LOG_FILE") or None,
    )
