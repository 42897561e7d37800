"""
HTTP client for the remote behavioral scoring service.

POST {base_url}/v1/behavior/score  → RiskAssessment for one session
GET  {base_url}/health             → 200 when the service is up

Transport failures (connect, timeout) raise BackendUnreachable so a batch
pass can stop early; bad statuses and malformed payloads raise ScoringError
and only fail the one session.
"""
from __future__ import annotations

from typing import Optional

import httpx
import structlog
from pydantic import ValidationError

from app.core.config import Settings
from app.core.errors import BackendUnreachable, ScoringError
from app.schemas.behavior_session import BehaviorSession
from app.schemas.risk_assessment import RiskAssessment

logger = structlog.get_logger(__name__)


class HttpScoringBackend:

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        api_key: str = "",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers=headers,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "HttpScoringBackend":
        return cls(
            settings.scoring_backend_url,
            timeout=settings.scoring_timeout_seconds,
            api_key=settings.scoring_api_key,
        )

    async def score(self, session: BehaviorSession) -> RiskAssessment:
        try:
            resp = await self._client.post("/v1/behavior/score", json=session.model_dump(mode="json"))
            resp.raise_for_status()
        except httpx.TransportError as e:
            raise BackendUnreachable(f"Scoring backend unreachable: {e!r}") from e
        except httpx.HTTPStatusError as e:
            raise ScoringError(f"Scoring backend returned {e.response.status_code}") from e

        try:
            return RiskAssessment.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            raise ScoringError(f"Malformed assessment payload: {e}") from e

    async def test_connection(self) -> bool:
        try:
            resp = await self._client.get("/health")
        except httpx.HTTPError as e:
            logger.warning("scoring_backend_health_failed", error=repr(e))
            return False
        return resp.status_code == 200

    async def aclose(self) -> None:
        await self._client.aclose()
