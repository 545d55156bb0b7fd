"""Tests for the socket envelope."""

from __future__ import annotations

import json

import pytest

from claude_mirror.bridge.types import BridgeMessage, EventType, parse_timestamp, to_iso
from claude_mirror.errors import EnvelopeError


def _line(**overrides) -> str:
    data = {
        "type": "agent_response",
        "sessionId": "sess-1",
        "timestamp": "2026-01-01T00:00:00.000Z",
        "content": "hello",
    }
    data.update(overrides)
    return json.dumps({k: v for k, v in data.items() if v is not None})


class TestFromJson:
    def test_valid_message(self) -> None:
        msg = BridgeMessage.from_json(_line(metadata={"tmuxTarget": "1:0.0"}))
        assert msg.type is EventType.AGENT_RESPONSE
        assert msg.session_id == "sess-1"
        assert msg.content == "hello"
        assert msg.meta_str("tmuxTarget") == "1:0.0"

    def test_missing_metadata_defaults_to_empty(self) -> None:
        assert BridgeMessage.from_json(_line()).metadata == {}

    def test_accepts_bytes(self) -> None:
        assert BridgeMessage.from_json(_line().encode()).session_id == "sess-1"

    @pytest.mark.parametrize(
        "line",
        [
            "not json",
            "[1, 2]",
            _line(type="bogus"),
            _line(type="approval_response"),
            _line(sessionId=""),
            _line(sessionId=42),
            _line(timestamp="yesterday"),
            _line(content=["a"]),
            _line(metadata="x"),
        ],
    )
    def test_rejects_malformed(self, line: str) -> None:
        with pytest.raises(EnvelopeError):
            BridgeMessage.from_json(line)


class TestToJson:
    def test_wire_field_names(self) -> None:
        msg = BridgeMessage(
            type=EventType.APPROVAL_RESPONSE,
            session_id="s",
            content="approve",
            metadata={"approvalId": "a1"},
        )
        data = json.loads(msg.to_json())
        assert data["type"] == "approval_response"
        assert data["sessionId"] == "s"
        assert data["metadata"] == {"approvalId": "a1"}
        assert "\n" not in msg.to_json()

    def test_empty_metadata_omitted(self) -> None:
        msg = BridgeMessage(type=EventType.ERROR, session_id="s", content="x")
        assert "metadata" not in json.loads(msg.to_json())


class TestTimestamps:
    def test_naive_timestamp_assumed_utc(self) -> None:
        assert parse_timestamp("2026-01-01T00:00:00").utcoffset().total_seconds() == 0

    def test_to_iso_sorts_lexically(self) -> None:
        early = to_iso(parse_timestamp("2026-01-01T00:00:00Z"))
        late = to_iso(parse_timestamp("2026-01-01T00:00:00.500Z"))
        assert early < late
