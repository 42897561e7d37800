"""
Batch pass outputs: progress snapshots and the terminal pass result.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping

from app.core.errors import ScoringFailed
from app.schemas.behavior_session import SessionKey
from app.schemas.risk_assessment import RiskAssessment


class PassStatus(str, Enum):
    COMPLETED = "completed"
    COMPLETED_WITH_FAILURES = "completed_with_failures"
    CANCELED = "canceled"
    BACKEND_UNAVAILABLE = "backend_unavailable"
    ERRORED = "errored"


@dataclass(frozen=True)
class ProgressSnapshot:
    generation: int
    processed: int
    scored: int
    failed: int
    total: int
    entries: Mapping[SessionKey, RiskAssessment] = field(
        default_factory=lambda: MappingProxyType({})
    )

    @property
    def is_final(self) -> bool:
        return self.processed == self.total


@dataclass(frozen=True)
class PassResult:
    generation: int
    status: PassStatus
    total: int
    scored: int = 0
    failures: tuple[ScoringFailed, ...] = ()
    elapsed_ms: int = 0

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def message(self) -> str:
        if self.status == PassStatus.COMPLETED:
            return f"Scored {self.scored}/{self.total} sessions"
        if self.status == PassStatus.COMPLETED_WITH_FAILURES:
            return f"Scored {self.scored}/{self.total} sessions, {self.failed} failed"
        if self.status == PassStatus.CANCELED:
            return f"Pass canceled after {self.scored}/{self.total} sessions"
        if self.status == PassStatus.ERRORED:
            return "Scoring pass stopped by an unexpected error"
        return "Scoring backend is not available"
