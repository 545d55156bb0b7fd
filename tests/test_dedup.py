"""Tests for EchoFilter."""

from __future__ import annotations

from claude_mirror.bridge.dedup import EchoFilter


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestEchoFilter:
    def test_echo_within_window(self) -> None:
        clock = FakeClock()
        f = EchoFilter(window=10, clock=clock)
        f.record("s1", "run the tests")
        clock.now += 9
        assert f.is_echo("s1", "run the tests")

    def test_expires_after_window(self) -> None:
        clock = FakeClock()
        f = EchoFilter(window=10, clock=clock)
        f.record("s1", "run the tests")
        clock.now += 11
        assert not f.is_echo("s1", "run the tests")
        assert len(f) == 0

    def test_match_does_not_consume(self) -> None:
        f = EchoFilter(clock=FakeClock())
        f.record("s1", "hi")
        assert f.is_echo("s1", "hi")
        assert f.is_echo("s1", "hi")

    def test_scoped_per_session(self) -> None:
        f = EchoFilter(clock=FakeClock())
        f.record("s1", "hi")
        assert not f.is_echo("s2", "hi")

    def test_whitespace_is_normalized(self) -> None:
        f = EchoFilter(clock=FakeClock())
        f.record("s1", "  fix   the\nbug ")
        assert f.is_echo("s1", "fix the bug")

    def test_different_text_is_not_echo(self) -> None:
        f = EchoFilter(clock=FakeClock())
        f.record("s1", "hi")
        assert not f.is_echo("s1", "hello")
