"""
Tests for the HTTP scoring client using httpx's mock transport.
"""
import json

import httpx
import pytest

from app.core.errors import BackendUnreachable, ScoringError
from app.services.scoring_client import HttpScoringBackend
from tests.fakes import _make_assessment, _make_session

ASSESSMENT = _make_assessment(0.42, description="Slightly unusual touch rhythm")


def _make_client(handler) -> HttpScoringBackend:
    return HttpScoringBackend(
        "http://scoring.test",
        api_key="secret",
        transport=httpx.MockTransport(handler),
    )


class TestScore:

    @pytest.mark.asyncio
    async def test_posts_session_and_parses_assessment(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["auth"] = request.headers.get("authorization")
            seen["body"] = request.read()
            return httpx.Response(200, json=ASSESSMENT.model_dump(mode="json"))

        client = _make_client(handler)
        result = await client.score(_make_session(session_id=7))
        await client.aclose()

        assert result == ASSESSMENT
        assert seen["path"] == "/v1/behavior/score"
        assert seen["auth"] == "Bearer secret"
        assert json.loads(seen["body"])["session_id"] == 7

    @pytest.mark.asyncio
    async def test_http_error_is_scoring_error(self):
        client = _make_client(lambda request: httpx.Response(500, text="model crashed"))
        with pytest.raises(ScoringError) as exc:
            await client.score(_make_session(session_id=1))
        assert not isinstance(exc.value, BackendUnreachable)
        await client.aclose()

    @pytest.mark.asyncio
    async def test_malformed_payload_is_scoring_error(self):
        client = _make_client(lambda request: httpx.Response(200, json={"risk_level": "extreme"}))
        with pytest.raises(ScoringError):
            await client.score(_make_session(session_id=1))
        await client.aclose()

    @pytest.mark.asyncio
    async def test_connect_error_is_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = _make_client(handler)
        with pytest.raises(BackendUnreachable):
            await client.score(_make_session(session_id=1))
        await client.aclose()


class TestConnection:

    @pytest.mark.asyncio
    async def test_healthy(self):
        client = _make_client(lambda request: httpx.Response(200, json={"status": "ok"}))
        assert await client.test_connection()
        await client.aclose()

    @pytest.mark.asyncio
    async def test_unhealthy_status(self):
        client = _make_client(lambda request: httpx.Response(503))
        assert not await client.test_connection()
        await client.aclose()

    @pytest.mark.asyncio
    async def test_transport_failure(self):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        client = _make_client(handler)
        assert not await client.test_connection()
        await client.aclose()
