"""
Risk assessment returned by the scoring backend (and by the live feed).

The backend owns the score → level boundaries. The engine treats
`risk_level` as authoritative for display and filtering and never
recomputes it from `risk_score`.
"""
from __future__ import annotations

from enum import Enum
from pydantic import BaseModel, Field


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _LEVEL_RANK[self]

    def at_least(self, other: "RiskLevel") -> bool:
        return self.rank >= other.rank


_LEVEL_RANK = {
    RiskLevel.LOW: 0,
    RiskLevel.MEDIUM: 1,
    RiskLevel.HIGH: 2,
}


class RiskAssessment(BaseModel):
    """One session's risk: overall level/score plus five independent sub-scores."""
    model_config = {"frozen": True}

    risk_level: RiskLevel
    risk_score: float = Field(ge=0.0, le=1.0, description="Normalized overall anomaly score")
    risk_description: str = ""

    # ── Breakdown ──
    touch_anomaly_score: float = Field(ge=0.0, le=1.0)
    motion_anomaly_score: float = Field(ge=0.0, le=1.0)
    context_anomaly_score: float = Field(ge=0.0, le=1.0)
    location_anomaly_score: float = Field(ge=0.0, le=1.0)
    time_anomaly_score: float = Field(ge=0.0, le=1.0)

    @property
    def risk_percentage(self) -> str:
        return f"{self.risk_score * 100:.1f}%"

    @property
    def breakdown(self) -> dict[str, float]:
        return {
            "touch": self.touch_anomaly_score,
            "motion": self.motion_anomaly_score,
            "context": self.context_anomaly_score,
            "location": self.location_anomaly_score,
            "time": self.time_anomaly_score,
        }
