"""
Tests for the session store and live feed adapters (no database or broker).
"""
import asyncio
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import OperationalError

from app.aggregation.live_overlay import LiveOverlayMerger
from app.aggregation.table import AssessmentTable
from app.core.errors import StoreError
from app.models.behavior_session import BehaviorSessionRecord
from app.services.live_feed import ConsumerStream, NullLiveRiskFeed, decode_assessment
from app.services.session_store import SqlSessionStore, to_behavior_session
from tests.fakes import _make_assessment


def _make_record(**kwargs) -> BehaviorSessionRecord:
    defaults = {
        "id": 1,
        "session_id": 11,
        "recorded_at": datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc),
        "touch_data": [{"x": 1.0, "y": 2.0}],
        "motion_data": [],
        "context_data": {"battery": 0.5},
        "location_data": None,
        "timing_data": {"hour": 9},
    }
    defaults.update(kwargs)
    return BehaviorSessionRecord(**defaults)


class _Result:
    def __init__(self, records):
        self._records = records

    def scalars(self):
        return self

    def all(self):
        return self._records


class _FakeDb:
    def __init__(self, records=None, error=None):
        self._records = records or []
        self._error = error

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def execute(self, stmt):
        if self._error is not None:
            raise self._error
        return _Result(self._records)


class TestSqlSessionStore:

    def test_record_mapping(self):
        session = to_behavior_session(_make_record(motion_data=None))
        assert session.session_id == 11
        assert session.timestamp.minute == 30
        assert session.motion_data == []
        assert session.context_data == {"battery": 0.5}

    def test_missing_device_id_kept_absent(self):
        assert to_behavior_session(_make_record(session_id=None)).session_id is None

    @pytest.mark.asyncio
    async def test_load_all(self):
        records = [_make_record(id=1, session_id=1), _make_record(id=2, session_id=2)]
        store = SqlSessionStore(lambda: _FakeDb(records))
        sessions = await store.load_all()
        assert [s.session_id for s in sessions] == [1, 2]

    @pytest.mark.asyncio
    async def test_database_error_is_store_error(self):
        error = OperationalError("SELECT", {}, Exception("connection refused"))
        store = SqlSessionStore(lambda: _FakeDb(error=error))
        with pytest.raises(StoreError):
            await store.load_all()


class TestLiveFeedDecoding:

    def test_valid_message(self):
        assessment = _make_assessment(0.75)
        assert decode_assessment(assessment.model_dump_json().encode()) == assessment

    def test_malformed_message_skipped(self):
        assert decode_assessment(b'{"risk_level": "low"}') is None
        assert decode_assessment(b"not json") is None

    @pytest.mark.asyncio
    async def test_null_feed_never_emits(self):
        stream = await NullLiveRiskFeed().subscribe()
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(stream.__anext__(), timeout=0.01)
        await stream.aclose()


class _FakeConsumer:

    def __init__(self) -> None:
        self.messages: asyncio.Queue = asyncio.Queue()
        self.stopped = 0

    def push(self, value: bytes) -> None:
        self.messages.put_nowait(SimpleNamespace(value=value))

    async def getone(self):
        return await self.messages.get()

    async def stop(self) -> None:
        self.stopped += 1


class _ConsumerFeed:

    def __init__(self, consumer: _FakeConsumer) -> None:
        self.consumer = consumer

    async def subscribe(self):
        return ConsumerStream(self.consumer, "behavior.live-risk")


class TestConsumerStream:

    @pytest.mark.asyncio
    async def test_stop_before_first_event_stops_consumer(self):
        consumer = _FakeConsumer()
        merger = LiveOverlayMerger(AssessmentTable(), lambda: 1)
        await merger.start(_ConsumerFeed(consumer))
        await merger.stop()

        assert consumer.stopped == 1
        assert not merger.is_running

    @pytest.mark.asyncio
    async def test_malformed_messages_skipped(self):
        consumer = _FakeConsumer()
        assessment = _make_assessment(0.8)
        consumer.push(b"garbage")
        consumer.push(assessment.model_dump_json().encode())
        stream = ConsumerStream(consumer, "behavior.live-risk")

        assert await stream.__anext__() == assessment
        await stream.aclose()
        await stream.aclose()
        assert consumer.stopped == 1
        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()
