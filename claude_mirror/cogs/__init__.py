"""Cogs for claude-discord-mirror."""

from .mirror_commands import AbortConfirmView, MirrorCommandsCog

__all__ = [
    "AbortConfirmView",
    "MirrorCommandsCog",
]
