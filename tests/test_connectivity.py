"""
Unit tests for the connectivity gate.
"""
import pytest

from app.aggregation.connectivity import ConnectivityGate
from tests.fakes import FakeBackend


class _ExplodingBackend(FakeBackend):
    async def test_connection(self) -> bool:
        raise OSError("network unreachable")


class TestConnectivityGate:

    def test_unknown_until_tested(self):
        gate = ConnectivityGate(FakeBackend())
        assert not gate.is_available
        assert gate.state.last_checked is None

    @pytest.mark.asyncio
    async def test_reachable_backend(self):
        gate = ConnectivityGate(FakeBackend(available=True))
        assert await gate.test()
        assert gate.is_available
        assert gate.state.last_checked is not None
        assert gate.state.last_error is None

    @pytest.mark.asyncio
    async def test_unreachable_backend(self):
        gate = ConnectivityGate(FakeBackend(available=False))
        assert not await gate.test()
        assert not gate.is_available
        assert gate.state.last_error == "connection test failed"

    @pytest.mark.asyncio
    async def test_probe_exception_counts_as_unreachable(self):
        gate = ConnectivityGate(_ExplodingBackend())
        assert not await gate.test()
        assert "network unreachable" in gate.state.last_error

    @pytest.mark.asyncio
    async def test_failure_observation_overrides_last_test(self):
        gate = ConnectivityGate(FakeBackend(available=True))
        await gate.test()
        first_check = gate.state.last_checked
        gate.mark_unavailable("3 consecutive scoring failures")

        assert not gate.is_available
        assert gate.state.last_error == "3 consecutive scoring failures"
        assert gate.state.last_checked >= first_check

    @pytest.mark.asyncio
    async def test_retest_recovers(self):
        backend = FakeBackend(available=True)
        gate = ConnectivityGate(backend)
        gate.mark_unavailable("timeout")
        assert await gate.test()
        assert gate.is_available
