"""
AssessmentTable — the single source of truth for per-session risk.

Every mutation is a plain synchronous method call, so on the asyncio event
loop writes are serialized without locks: a value is replaced whole, never
merged, and readers never observe a half-applied write. Snapshots are
read-only copies; later writes do not show through them.

Batch writes are tagged with the generation of the pass that produced them.
Only the current generation may write; a superseded pass's late results
are discarded. Live overlay writes are not generation-gated.
"""
from __future__ import annotations

from types import MappingProxyType
from typing import Mapping, Optional

import structlog

from app.schemas.behavior_session import SessionKey
from app.schemas.risk_assessment import RiskAssessment, RiskLevel

logger = structlog.get_logger(__name__)


class AssessmentTable:

    def __init__(self) -> None:
        self._entries: dict[SessionKey, RiskAssessment] = {}
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    def begin_generation(self) -> int:
        """Open a new batch generation; any older pass loses write access."""
        self._generation += 1
        return self._generation

    def reset(self) -> None:
        # Rebind rather than clear() so outstanding snapshots stay intact.
        self._entries = {}

    def put_batch(self, key: SessionKey, assessment: RiskAssessment, generation: int) -> bool:
        if generation != self._generation:
            logger.debug(
                "stale_batch_write_discarded",
                session_key=key,
                write_generation=generation,
                current_generation=self._generation,
            )
            return False
        self._entries[key] = assessment
        return True

    def put_live(self, key: SessionKey, assessment: RiskAssessment) -> None:
        self._entries[key] = assessment

    def get(self, key: SessionKey) -> Optional[RiskAssessment]:
        return self._entries.get(key)

    def snapshot(self) -> Mapping[SessionKey, RiskAssessment]:
        return MappingProxyType(dict(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    # ── Summaries (category is authoritative) ──

    def count_by_level(self) -> dict[RiskLevel, int]:
        counts = {level: 0 for level in RiskLevel}
        for assessment in self._entries.values():
            counts[assessment.risk_level] += 1
        return counts

    @property
    def high_risk_count(self) -> int:
        return self.count_by_level()[RiskLevel.HIGH]

    def filter_by_level(self, min_level: RiskLevel) -> dict[SessionKey, RiskAssessment]:
        return {
            key: assessment
            for key, assessment in self._entries.items()
            if assessment.risk_level.at_least(min_level)
        }
