"""Exception hierarchy shared across the bridge."""

from __future__ import annotations


class ConfigurationError(Exception):
    """Required configuration is missing or malformed."""


class EnvelopeError(ValueError):
    """A line received on the socket is not a valid bridge envelope."""


class ChatError(Exception):
    """A chat platform call failed.

    Plain ``ChatError`` is treated as transient and retried with backoff.
    The subclasses below are structural failures with their own recovery.
    """


class DestinationClosedError(ChatError):
    """The target thread is archived or locked."""


class MarkupParseError(ChatError):
    """The platform rejected the message body's formatting."""


class ThreadCreationTimeout(Exception):
    """Creating a session's thread did not finish before the deadline."""

    def __init__(self, key: str, timeout: float) -> None:
        super().__init__(f"thread creation for {key} timed out after {timeout:.1f}s")
        self.key = key
        self.timeout = timeout


class InjectionError(Exception):
    """Text could not be delivered to the session's terminal."""
