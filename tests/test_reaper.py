"""Tests for StaleSessionReaper."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest

from claude_mirror.bridge.reaper import StaleSessionReaper
from claude_mirror.bridge.types import SessionStatus
from claude_mirror.delivery.pipeline import DeliveryPipeline

T0 = datetime(2026, 1, 1, tzinfo=UTC)


def _make_bot() -> MagicMock:
    bot = MagicMock()
    bot.loop = MagicMock()
    return bot


@pytest.fixture
def pipeline(chat) -> DeliveryPipeline:
    return DeliveryPipeline(chat, rate_limit=1000.0, backoff_base=0.0)


@pytest.fixture
def reaper(registry, pipeline, injector) -> StaleSessionReaper:
    return StaleSessionReaper(
        _make_bot(),
        registry=registry,
        pipeline=pipeline,
        injector=injector,
        threshold_hours=72,
    )


async def _stale_session(registry, session_id="s1", target="1:0.0", thread="111"):
    await registry.ensure_session(session_id, terminal_target=target, now=T0)
    if thread:
        await registry.bind_thread(session_id, thread)


class TestReaperInit:
    def test_loop_not_running_at_init(self, reaper: StaleSessionReaper) -> None:
        assert not reaper._sweep_loop.is_running()

    def test_interval_is_configurable(self, registry, pipeline, injector) -> None:
        reaper = StaleSessionReaper(
            _make_bot(),
            registry=registry,
            pipeline=pipeline,
            injector=injector,
            interval_minutes=10,
        )
        assert reaper._sweep_loop.minutes == 10


class TestSweep:
    async def test_reclaims_when_pane_is_gone(self, reaper, registry, injector, chat) -> None:
        await _stale_session(registry)
        injector.pane_alive.return_value = False

        reclaimed = await reaper.sweep(now=T0 + timedelta(hours=73))

        assert reclaimed == ["s1"]
        session = await registry.get("s1")
        assert session.status is SessionStatus.ENDED
        assert "Session ended (terminal closed)" in chat.texts_to("111")[0]
        assert chat.closed == ["111"]

    async def test_keeps_session_with_live_pane(self, reaper, registry, injector, chat) -> None:
        await _stale_session(registry)
        injector.pane_alive.return_value = True

        assert await reaper.sweep(now=T0 + timedelta(hours=73)) == []
        assert (await registry.get("s1")).status is SessionStatus.ACTIVE
        assert chat.sent == []

    async def test_recent_session_untouched(self, reaper, registry, injector) -> None:
        await _stale_session(registry)
        injector.pane_alive.return_value = False

        assert await reaper.sweep(now=T0 + timedelta(hours=1)) == []
        injector.pane_alive.assert_not_called()

    async def test_reclaims_when_pane_taken_by_other_session(
        self, reaper, registry, injector
    ) -> None:
        await _stale_session(registry, "old", target="1:0.0")
        await registry.ensure_session("new", terminal_target="1:0.0", now=T0 + timedelta(hours=72))
        injector.pane_alive.return_value = True

        reclaimed = await reaper.sweep(now=T0 + timedelta(hours=73))

        assert reclaimed == ["old"]
        assert (await registry.get("new")).status is SessionStatus.ACTIVE

    async def test_skips_session_without_terminal(self, reaper, registry, injector) -> None:
        await _stale_session(registry, target=None)
        assert await reaper.sweep(now=T0 + timedelta(hours=73)) == []
        injector.pane_alive.assert_not_called()

    async def test_notice_delivered_before_close(self, reaper, registry, injector, chat) -> None:
        await _stale_session(registry)
        injector.pane_alive.return_value = False
        order: list[str] = []
        original_send = chat.send_message
        original_close = chat.close_thread

        async def send(dest, text, buttons=None):
            order.append("send")
            await original_send(dest, text, buttons)

        async def close(thread_id):
            order.append("close")
            await original_close(thread_id)

        chat.send_message = send
        chat.close_thread = close

        await reaper.sweep(now=T0 + timedelta(hours=73))
        assert order == ["send", "close"]

    async def test_purges_long_ended_sessions(self, reaper, registry) -> None:
        await registry.ensure_session("ancient", now=T0)
        await registry.mark_ended("ancient")
        await reaper.sweep(now=T0 + timedelta(days=8))
        assert await registry.get("ancient") is None

    async def test_session_touched_mid_sweep_is_kept(
        self, reaper, registry, injector, chat
    ) -> None:
        await _stale_session(registry)

        async def pane_alive(target, socket=None):
            # An event lands while the pane check is in flight
            await registry.ensure_session(
                "s1", terminal_target="1:0.0", now=T0 + timedelta(hours=73)
            )
            return False

        injector.pane_alive.side_effect = pane_alive

        assert await reaper.sweep(now=T0 + timedelta(hours=73)) == []
        assert (await registry.get("s1")).status is SessionStatus.ACTIVE
        assert chat.sent == []
        assert chat.closed == []

    async def test_ended_session_is_not_reported(self, reaper, registry, injector) -> None:
        await _stale_session(registry)
        injector.pane_alive.return_value = False
        candidates = await registry.stale_candidates(72, now=T0 + timedelta(hours=73))
        await registry.mark_ended("s1")

        assert await reaper._reclaim(candidates[0], "gone") is False
