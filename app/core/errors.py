"""
Error taxonomy for the aggregation engine.

Per-session failures (ScoringFailed) are recovered inside a batch pass.
Pass-level failures (BackendUnavailable) surface as a PassResult status.
Setup failures (InitializationError) are raised to the caller of start().
"""
from __future__ import annotations

from typing import Hashable, Optional


class RiskEngineError(Exception):
    """Base class for every error raised by the engine."""


class InitializationError(RiskEngineError):
    """Session store or live subscription could not be established."""


class BackendUnavailable(RiskEngineError):
    """Scoring backend is unreachable; no scoring was (or will be) performed."""


class StoreError(RiskEngineError):
    """The session store failed to load sessions."""


class ScoringError(RiskEngineError):
    """Raised by a ScoringBackend when one session cannot be scored."""


class BackendUnreachable(ScoringError):
    """Transport-level scoring failure: the backend could not be reached at all."""


class ScoringFailed(RiskEngineError):
    """Record of one session whose scoring call failed during a pass."""

    def __init__(self, session_key: Hashable, reason: Optional[str] = None):
        self.session_key = session_key
        self.reason = reason or "unknown"
        super().__init__(f"Scoring failed for session {session_key}: {self.reason}")
