"""
ConnectivityGate — last-known reachability of the scoring backend.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Optional

import structlog

from app.aggregation.interfaces import ScoringBackend
from app.core.metrics import BACKEND_AVAILABLE

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ConnectivityState:
    available: bool = False
    last_checked: Optional[datetime] = None
    last_error: Optional[str] = None


class ConnectivityGate:

    def __init__(self, backend: ScoringBackend) -> None:
        self._backend = backend
        self._state = ConnectivityState()

    @property
    def is_available(self) -> bool:
        return self._state.available

    @property
    def state(self) -> ConnectivityState:
        return self._state

    async def test(self) -> bool:
        """Probe the backend; any exception from the probe counts as unreachable."""
        error: Optional[str] = None
        try:
            available = bool(await self._backend.test_connection())
        except Exception as e:
            available = False
            error = str(e) or e.__class__.__name__

        if not available and error is None:
            error = "connection test failed"
        self._set(available, error)
        logger.info("scoring_backend_tested", available=available, error=error)
        return available

    def mark_unavailable(self, reason: str) -> None:
        if self._state.available:
            logger.warning("scoring_backend_marked_unavailable", reason=reason)
        self._set(False, reason)

    def _set(self, available: bool, error: Optional[str]) -> None:
        self._state = replace(
            self._state,
            available=available,
            last_checked=datetime.now(timezone.utc),
            last_error=error,
        )
        BACKEND_AVAILABLE.set(1 if available else 0)
