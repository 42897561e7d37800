"""
Live risk feed — assessments pushed by the on-device monitor via Kafka.

Each message value is a RiskAssessment JSON document for the user's most
recent session. Malformed messages are logged and skipped; they never end
the stream. When Kafka is disabled the null feed is used instead.
"""
from __future__ import annotations

import asyncio
from typing import AsyncIterator, Optional

import structlog
from pydantic import ValidationError

from app.core.config import Settings
from app.core.metrics import LIVE_EVENTS
from app.schemas.risk_assessment import RiskAssessment

logger = structlog.get_logger(__name__)


def decode_assessment(raw: bytes) -> Optional[RiskAssessment]:
    try:
        return RiskAssessment.model_validate_json(raw)
    except ValidationError as e:
        LIVE_EVENTS.labels(outcome="invalid").inc()
        logger.warning("live_event_invalid", error=str(e))
        return None


class KafkaLiveRiskFeed:

    def __init__(self, bootstrap: str, topic: str, group_id: str) -> None:
        self._bootstrap = bootstrap
        self._topic = topic
        self._group_id = group_id

    @classmethod
    def from_settings(cls, settings: Settings) -> "KafkaLiveRiskFeed":
        return cls(settings.kafka_bootstrap, settings.kafka_topic_live_risk, settings.kafka_group_id)

    async def subscribe(self) -> "ConsumerStream":
        from aiokafka import AIOKafkaConsumer
        consumer = AIOKafkaConsumer(
            self._topic,
            bootstrap_servers=self._bootstrap,
            group_id=self._group_id,
            auto_offset_reset="latest",
        )
        try:
            await consumer.start()
        except Exception:
            await consumer.stop()
            raise
        logger.info("kafka_live_feed_started", topic=self._topic)
        return ConsumerStream(consumer, self._topic)


class ConsumerStream:
    """
    Async iterator over decoded assessments. aclose() stops the consumer
    whether or not iteration ever began.
    """

    def __init__(self, consumer, topic: str) -> None:
        self._consumer = consumer
        self._topic = topic
        self._closed = False

    def __aiter__(self) -> "ConsumerStream":
        return self

    async def __anext__(self) -> RiskAssessment:
        while not self._closed:
            message = await self._consumer.getone()
            assessment = decode_assessment(message.value)
            if assessment is not None:
                return assessment
        raise StopAsyncIteration

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._consumer.stop()
        logger.info("kafka_live_feed_stopped", topic=self._topic)


class NullLiveRiskFeed:
    """Feed that never emits, used when Kafka is disabled (local dev)."""

    async def subscribe(self) -> AsyncIterator[RiskAssessment]:
        return self._stream()

    async def _stream(self) -> AsyncIterator[RiskAssessment]:
        await asyncio.Event().wait()
        yield  # pragma: no cover
