"""
SQL-backed SessionStore.

Reads every recorded behavior session, oldest first. Uses a read-only
query; the engine never writes sessions.
"""
from __future__ import annotations

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.errors import StoreError
from app.models.behavior_session import BehaviorSessionRecord
from app.schemas.behavior_session import BehaviorSession

logger = structlog.get_logger(__name__)


def to_behavior_session(record: BehaviorSessionRecord) -> BehaviorSession:
    return BehaviorSession(
        session_id=record.session_id,
        timestamp=record.recorded_at,
        touch_data=record.touch_data or [],
        motion_data=record.motion_data or [],
        context_data=record.context_data or {},
        location_data=record.location_data,
        timing_data=record.timing_data or {},
    )


class SqlSessionStore:

    def __init__(self, sessionmaker: async_sessionmaker) -> None:
        self._sessionmaker = sessionmaker

    async def load_all(self) -> list[BehaviorSession]:
        stmt = select(BehaviorSessionRecord).order_by(
            BehaviorSessionRecord.recorded_at.asc(),
            BehaviorSessionRecord.id.asc(),
        )
        try:
            async with self._sessionmaker() as db:
                result = await db.execute(stmt)
                records = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error("session_store_load_failed", error=str(e))
            raise StoreError(f"Could not load behavior sessions: {e}") from e

        sessions = [to_behavior_session(r) for r in records]
        logger.info("session_store_loaded", count=len(sessions))
        return sessions
