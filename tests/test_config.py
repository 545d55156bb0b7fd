"""Tests for load_config()."""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest

from claude_mirror.config import load_config
from claude_mirror.errors import ConfigurationError

_MIRROR_VARS = [
    "MIRROR_SOCKET_PATH",
    "MIRROR_DB_PATH",
    "MIRROR_STALE_SESSION_HOURS",
    "MIRROR_RATE_LIMIT",
    "MIRROR_APPROVAL_TIMEOUT",
    "MIRROR_VERBOSE",
    "MIRROR_USE_THREADS",
    "MIRROR_CHUNK_SIZE",
    "MIRROR_REAPER_INTERVAL_MINUTES",
    "MIRROR_PURGE_AFTER_DAYS",
    "MIRROR_API_PORT",
    "MIRROR_API_SECRET",
    "MIRROR_LOG_LEVEL",
    "MIRROR_LOG_FILE",
    "DISCORD_ALLOWED_USER_IDS",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _MIRROR_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("DISCORD_BOT_TOKEN", "token-abc")
    monkeypatch.setenv("DISCORD_CHANNEL_ID", "123456789")
    # Keep a developer's .env out of the tests
    with patch("claude_mirror.config.load_dotenv"):
        yield


def test_defaults() -> None:
    config = load_config()
    assert config.token == "token-abc"
    assert config.channel_id == 123456789
    assert config.stale_session_hours == 72
    assert config.rate_limit == 1.0
    assert config.approval_timeout == 300
    assert config.verbose is True
    assert config.use_threads is True
    assert config.chunk_size == 1900
    assert config.api_port == 0
    assert config.api_secret is None
    assert config.allowed_user_ids is None
    assert config.socket_path == os.path.expanduser("~/.config/claude-discord-mirror/bridge.sock")


def test_overrides(monkeypatch) -> None:
    monkeypatch.setenv("MIRROR_SOCKET_PATH", "/run/mirror.sock")
    monkeypatch.setenv("MIRROR_STALE_SESSION_HOURS", "12.5")
    monkeypatch.setenv("MIRROR_VERBOSE", "off")
    monkeypatch.setenv("MIRROR_USE_THREADS", "no")
    monkeypatch.setenv("MIRROR_CHUNK_SIZE", "1500")
    monkeypatch.setenv("MIRROR_API_PORT", "8765")
    monkeypatch.setenv("MIRROR_LOG_LEVEL", "debug")
    config = load_config()
    assert config.socket_path == "/run/mirror.sock"
    assert config.stale_session_hours == 12.5
    assert config.verbose is False
    assert config.use_threads is False
    assert config.chunk_size == 1500
    assert config.api_port == 8765
    assert config.log_level == "DEBUG"


def test_missing_token(monkeypatch) -> None:
    monkeypatch.delenv("DISCORD_BOT_TOKEN")
    with pytest.raises(ConfigurationError, match="DISCORD_BOT_TOKEN"):
        load_config()


def test_missing_channel(monkeypatch) -> None:
    monkeypatch.delenv("DISCORD_CHANNEL_ID")
    with pytest.raises(ConfigurationError, match="DISCORD_CHANNEL_ID"):
        load_config()


def test_non_numeric_channel(monkeypatch) -> None:
    monkeypatch.setenv("DISCORD_CHANNEL_ID", "#general")
    with pytest.raises(ConfigurationError, match="numeric"):
        load_config()


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("MIRROR_RATE_LIMIT", "fast"),
        ("MIRROR_RATE_LIMIT", "0"),
        ("MIRROR_APPROVAL_TIMEOUT", "-5"),
        ("MIRROR_CHUNK_SIZE", "12.5"),
        ("MIRROR_VERBOSE", "maybe"),
    ],
)
def test_malformed_values(monkeypatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)
    with pytest.raises(ConfigurationError, match=name):
        load_config()


def test_allowed_user_ids(monkeypatch) -> None:
    monkeypatch.setenv("DISCORD_ALLOWED_USER_IDS", "111, 222,")
    assert load_config().allowed_user_ids == {111, 222}


def test_allowed_user_ids_must_be_numeric(monkeypatch) -> None:
    monkeypatch.setenv("DISCORD_ALLOWED_USER_IDS", "111,alice")
    with pytest.raises(ConfigurationError, match="DISCORD_ALLOWED_USER_IDS"):
        load_config()
