"""
Recorded behavior sessions — read-only from the engine's perspective.
Schema: behavior_risk.behavior_session
"""
from datetime import datetime
from sqlalchemy import Column, Integer, DateTime, JSON
from sqlalchemy.orm import DeclarativeBase

SCHEMA = "behavior_risk"


class Base(DeclarativeBase):
    pass


class BehaviorSessionRecord(Base):
    __tablename__ = "behavior_session"
    __table_args__ = {"schema": SCHEMA}

    id = Column(Integer, primary_key=True, autoincrement=True)
    # Device-assigned id; older uploads do not carry one
    session_id = Column(Integer, nullable=True, index=True)
    recorded_at = Column(DateTime(timezone=True), nullable=False, index=True)

    # ── Raw behavioral features ──
    touch_data = Column(JSON, nullable=False, default=list)
    motion_data = Column(JSON, nullable=False, default=list)
    context_data = Column(JSON, nullable=False, default=dict)
    location_data = Column(JSON, nullable=True)
    timing_data = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<BehaviorSessionRecord {self.id} session_id={self.session_id} recorded_at={self.recorded_at}>"
