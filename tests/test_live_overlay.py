"""
Tests for the live overlay: latest-session targeting, resilience to feed
termination, and subscription setup failures.
"""
import pytest

from app.aggregation.live_overlay import LiveOverlayMerger
from app.aggregation.table import AssessmentTable
from app.core.errors import InitializationError
from tests.fakes import FakeFeed, _make_assessment, wait_until


def _make_overlay(latest=3):
    table = AssessmentTable()
    holder = {"latest": latest}
    overlay = LiveOverlayMerger(table, lambda: holder["latest"])
    return overlay, table, holder


class TestLiveOverlay:

    @pytest.mark.asyncio
    async def test_event_targets_latest_session(self):
        overlay, table, _ = _make_overlay(latest=3)
        feed = FakeFeed()
        await overlay.start(feed)

        live = _make_assessment(0.91, description="live")
        feed.push(live)
        await wait_until(lambda: overlay.events_applied == 1)

        assert table.get(3) is live
        await overlay.stop()

    @pytest.mark.asyncio
    async def test_latest_key_follows_session_list(self):
        overlay, table, holder = _make_overlay(latest=3)
        feed = FakeFeed()
        await overlay.start(feed)

        feed.push(_make_assessment(0.2))
        await wait_until(lambda: overlay.events_applied == 1)
        holder["latest"] = 4
        feed.push(_make_assessment(0.8))
        await wait_until(lambda: overlay.events_applied == 2)

        assert set(table.snapshot()) == {3, 4}
        await overlay.stop()

    @pytest.mark.asyncio
    async def test_events_dropped_without_sessions(self):
        overlay, table, _ = _make_overlay(latest=None)
        feed = FakeFeed()
        await overlay.start(feed)

        feed.push(_make_assessment(0.5))
        await wait_until(lambda: overlay.events_dropped == 1)

        assert len(table) == 0
        await overlay.stop()

    @pytest.mark.asyncio
    async def test_feed_end_keeps_overlay_results(self):
        overlay, table, _ = _make_overlay()
        feed = FakeFeed()
        await overlay.start(feed)
        live = _make_assessment(0.6)
        feed.push(live)
        feed.end()

        await wait_until(lambda: not overlay.is_running)
        assert table.get(3) is live
        await overlay.stop()

    @pytest.mark.asyncio
    async def test_feed_error_keeps_overlay_results(self):
        overlay, table, _ = _make_overlay()
        feed = FakeFeed()
        await overlay.start(feed)
        live = _make_assessment(0.6)
        feed.push(live)
        feed.fail(RuntimeError("broker went away"))

        await wait_until(lambda: not overlay.is_running)
        assert table.get(3) is live
        await overlay.stop()

    @pytest.mark.asyncio
    async def test_subscribe_failure_raises_initialization_error(self):
        overlay, _, _ = _make_overlay()
        with pytest.raises(InitializationError):
            await overlay.start(FakeFeed(fail_subscribe=True))
        assert not overlay.is_running

    @pytest.mark.asyncio
    async def test_stop_closes_stream(self):
        overlay, _, _ = _make_overlay()
        feed = FakeFeed()
        await overlay.start(feed)
        await wait_until(lambda: feed.listening)
        await overlay.stop()

        assert not overlay.is_running
        assert feed.closed

    @pytest.mark.asyncio
    async def test_start_is_idempotent_while_running(self):
        overlay, _, _ = _make_overlay()
        feed = FakeFeed()
        await overlay.start(feed)
        await overlay.start(feed)
        assert feed.subscriptions == 1
        await overlay.stop()
