"""Discord-facing side: client, views and message formatting."""

from .base import Button, ButtonStyle, ChatClient
from .chunker import chunk_message
from .discord_client import DiscordChatClient
from .views import DecisionView

__all__ = [
    "Button",
    "ButtonStyle",
    "ChatClient",
    "DecisionView",
    "DiscordChatClient",
    "chunk_message",
]
