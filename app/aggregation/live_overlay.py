"""
LiveOverlayMerger — patches the table from the live risk feed.

Every event is written under the key of the newest session in the current
list, replacing whatever a batch pass wrote there. No ordering is imposed
against a concurrent batch write to the same key: the last writer wins.

A feed that ends or errors only stops the overlay; entries already applied
stay in the table and batch passes are unaffected. Re-subscribing is the
feed's job.
"""
from __future__ import annotations

import asyncio
from typing import AsyncIterator, Callable, Optional

import structlog

from app.aggregation.interfaces import LiveRiskFeed
from app.aggregation.table import AssessmentTable
from app.core.errors import InitializationError
from app.core.metrics import LIVE_EVENTS
from app.schemas.behavior_session import SessionKey
from app.schemas.risk_assessment import RiskAssessment

logger = structlog.get_logger(__name__)

LatestKeyProvider = Callable[[], Optional[SessionKey]]


class LiveOverlayMerger:

    def __init__(self, table: AssessmentTable, latest_key: LatestKeyProvider) -> None:
        self._table = table
        self._latest_key = latest_key
        self._stream: Optional[AsyncIterator[RiskAssessment]] = None
        self._task: Optional[asyncio.Task] = None
        self.events_applied = 0
        self.events_dropped = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self, feed: LiveRiskFeed) -> None:
        if self.is_running:
            return
        try:
            self._stream = await feed.subscribe()
        except Exception as e:
            logger.error("live_feed_subscribe_failed", error=str(e))
            raise InitializationError(f"Live risk subscription failed: {e}") from e

        self._task = asyncio.create_task(self._consume(self._stream), name="live-risk-overlay")
        logger.info("live_feed_subscribed")

    def apply(self, assessment: RiskAssessment) -> bool:
        key = self._latest_key()
        if key is None:
            self.events_dropped += 1
            LIVE_EVENTS.labels(outcome="dropped").inc()
            logger.debug("live_event_dropped", reason="no_sessions_loaded")
            return False

        self._table.put_live(key, assessment)
        self.events_applied += 1
        LIVE_EVENTS.labels(outcome="applied").inc()
        logger.info(
            "live_event_applied",
            session_key=key,
            risk_level=assessment.risk_level.value,
            risk_score=assessment.risk_score,
        )
        return True

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self._close_stream()

    async def _consume(self, stream: AsyncIterator[RiskAssessment]) -> None:
        try:
            async for assessment in stream:
                self.apply(assessment)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("live_feed_errored", error=str(e))
        else:
            logger.info("live_feed_ended")

    async def _close_stream(self) -> None:
        stream, self._stream = self._stream, None
        aclose = getattr(stream, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception as e:
            logger.warning("live_feed_close_failed", error=str(e))
