"""
Collaborator contracts consumed by the aggregation engine.
Concrete adapters live in app.services.
"""
from __future__ import annotations

from typing import AsyncIterator, Protocol

from app.schemas.behavior_session import BehaviorSession
from app.schemas.risk_assessment import RiskAssessment


class SessionStore(Protocol):
    async def load_all(self) -> list[BehaviorSession]:
        """Oldest first. Raises StoreError."""
        ...


class ScoringBackend(Protocol):
    async def score(self, session: BehaviorSession) -> RiskAssessment:
        """Raises ScoringError (BackendUnreachable for transport failures)."""
        ...

    async def test_connection(self) -> bool:
        ...


class LiveRiskFeed(Protocol):
    async def subscribe(self) -> AsyncIterator[RiskAssessment]:
        """Stream of assessments for the most recent session. Closable via aclose()."""
        ...
