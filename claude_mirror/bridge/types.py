"""Envelope and enum definitions for the hook socket protocol."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from ..errors import EnvelopeError


class EventType(Enum):
    """Kinds of message carried over the socket."""

    # Emitted by the agent hooks
    SESSION_START = "session_start"
    SESSION_END = "session_end"
    USER_INPUT = "user_input"
    AGENT_RESPONSE = "agent_response"
    TOOL_START = "tool_start"
    TOOL_RESULT = "tool_result"
    APPROVAL_REQUEST = "approval_request"
    ERROR = "error"
    TURN_COMPLETE = "turn_complete"
    PRE_COMPACT = "pre_compact"

    # Written back by the daemon
    APPROVAL_RESPONSE = "approval_response"


INBOUND_EVENTS: frozenset[EventType] = frozenset(
    {
        EventType.SESSION_START,
        EventType.SESSION_END,
        EventType.USER_INPUT,
        EventType.AGENT_RESPONSE,
        EventType.TOOL_START,
        EventType.TOOL_RESULT,
        EventType.APPROVAL_REQUEST,
        EventType.ERROR,
        EventType.TURN_COMPLETE,
        EventType.PRE_COMPACT,
    }
)


class SessionStatus(Enum):
    """Lifecycle state of a mirrored session."""

    ACTIVE = "active"
    ENDED = "ended"


class ApprovalOutcome(Enum):
    """Terminal result of an approval request."""

    APPROVE = "approve"
    REJECT = "reject"
    ABORT = "abort"
    TIMEOUT = "timeout"


def to_iso(moment: datetime) -> str:
    """Fixed-width ISO-8601 UTC string, so stored values sort lexically."""
    return moment.astimezone(UTC).isoformat(timespec="milliseconds")


def utcnow_iso() -> str:
    """Current time as an ISO-8601 UTC string."""
    return to_iso(datetime.now(UTC))


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, assuming UTC when no offset is given."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass
class BridgeMessage:
    """One NDJSON envelope.

    Wire format::

        {"type": "...", "sessionId": "...", "timestamp": "...",
         "content": "...", "metadata": {...}}
    """

    type: EventType
    session_id: str
    content: str = ""
    timestamp: str = field(default_factory=utcnow_iso)
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_json(cls, line: str | bytes) -> BridgeMessage:
        """Parse and validate one line received from a hook process.

        Raises:
            EnvelopeError: when the line is not JSON, a required field is
                missing or mistyped, or the type is not an inbound kind.
        """
        try:
            data = json.loads(line)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise EnvelopeError(f"invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise EnvelopeError("envelope must be a JSON object")

        raw_type = data.get("type")
        try:
            event_type = EventType(raw_type)
        except ValueError:
            raise EnvelopeError(f"unknown message type: {raw_type!r}") from None
        if event_type not in INBOUND_EVENTS:
            raise EnvelopeError(f"message type {raw_type!r} is not accepted from hooks")

        session_id = data.get("sessionId")
        if not isinstance(session_id, str) or not session_id:
            raise EnvelopeError("sessionId must be a non-empty string")

        timestamp = data.get("timestamp")
        if not isinstance(timestamp, str):
            raise EnvelopeError("timestamp must be a string")
        try:
            parse_timestamp(timestamp)
        except ValueError:
            raise EnvelopeError(f"unparsable timestamp: {timestamp!r}") from None

        content = data.get("content", "")
        if not isinstance(content, str):
            raise EnvelopeError("content must be a string")

        metadata = data.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise EnvelopeError("metadata must be an object")

        return cls(
            type=event_type,
            session_id=session_id,
            content=content,
            timestamp=timestamp,
            metadata=metadata,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.type.value,
            "sessionId": self.session_id,
            "timestamp": self.timestamp,
            "content": self.content,
        }
        if self.metadata:
            data["metadata"] = self.metadata
        return data

    def to_json(self) -> str:
        """Serialize as a single line, without the trailing newline."""
        return json.dumps(self.to_dict(), ensure_ascii=False)

    def meta_str(self, key: str) -> str | None:
        """Return a non-empty string metadata value, or None."""
        value = self.metadata.get(key)
        if isinstance(value, str) and value:
            return value
        return None
