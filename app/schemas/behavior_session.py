"""
Behavioral session as supplied by the session store.

The store assigns `session_id`; older device uploads may lack one, in which
case the session's position in the newest-first list stands in for identity.
Feature payloads are opaque to the engine and forwarded to the backend as-is.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, Field

SessionKey = int


class BehaviorSession(BaseModel):
    """One recorded unit of user interaction data."""
    model_config = {"frozen": True}

    session_id: Optional[int] = None
    timestamp: datetime

    # ── Raw behavioral features ──
    touch_data: list[dict[str, Any]] = Field(default_factory=list)
    motion_data: list[dict[str, Any]] = Field(default_factory=list)
    context_data: dict[str, Any] = Field(default_factory=dict)
    location_data: Optional[dict[str, Any]] = None
    timing_data: dict[str, Any] = Field(default_factory=dict)


@dataclass(frozen=True)
class KeyedSession:
    """A session paired with the table key it resolves to for one load."""
    key: SessionKey
    session: BehaviorSession


def resolve_session_key(session: BehaviorSession, index: int) -> SessionKey:
    """Explicit id when present, otherwise the ordinal position."""
    if session.session_id is not None:
        return session.session_id
    return index


def key_sessions(newest_first: list[BehaviorSession]) -> list[KeyedSession]:
    """
    Resolve every key once, at load time.
    Both the batch scorer and the live overlay read keys from this list,
    so they can never disagree on which entry a session maps to.
    """
    return [
        KeyedSession(key=resolve_session_key(session, i), session=session)
        for i, session in enumerate(newest_first)
    ]
