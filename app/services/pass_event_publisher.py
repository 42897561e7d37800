"""
Kafka event publisher — fire-and-forget.

Publishes one event per finished batch pass for downstream consumers
(dashboards, alerting). Gracefully degrades if Kafka is unavailable.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone

import structlog
from app.core.config import get_settings
from app.schemas.pass_result import PassResult

logger = structlog.get_logger()

_producer = None


async def _get_producer():
    global _producer
    settings = get_settings()
    if not settings.kafka_enabled:
        return None
    if _producer is None:
        from aiokafka import AIOKafkaProducer
        _producer = AIOKafkaProducer(bootstrap_servers=settings.kafka_bootstrap)
        await _producer.start()
    return _producer


def build_pass_event(result: PassResult) -> dict:
    return {
        "event_type": "RISK_PASS_COMPLETED",
        "generation": result.generation,
        "status": result.status.value,
        "total": result.total,
        "scored": result.scored,
        "failed": result.failed,
        "failed_sessions": [f.session_key for f in result.failures],
        "elapsed_ms": result.elapsed_ms,
        "finished_at": datetime.now(timezone.utc).isoformat(),
    }


async def publish_pass_event(result: PassResult) -> None:
    settings = get_settings()
    if not settings.kafka_enabled:
        return

    try:
        producer = await _get_producer()
        if producer:
            event = build_pass_event(result)
            await producer.send_and_wait(
                settings.kafka_topic_pass_events,
                json.dumps(event).encode("utf-8"),
                key=str(result.generation).encode("utf-8"),
            )
            logger.info("kafka_event_published", generation=result.generation, status=result.status.value)
    except Exception as e:
        # Fire-and-forget: log but don't fail the pass
        logger.warning("kafka_publish_failed", error=str(e))


async def close_producer() -> None:
    global _producer
    if _producer is not None:
        await _producer.stop()
        _producer = None
