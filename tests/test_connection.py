"""
Tests for Connection — open, liveness probe, bounded calls.

All tests use fake transports — no network.

Test plan:
- open_connection: valid http(s) URLs accepted, malformed →
  InvalidEndpointError, commitment from enum or string, unknown
  commitment → ConfigurationError, no I/O on open
- probe_liveness: success returns version, each failure mode maps to
  its error code, hanging endpoint → TIMEOUT within the deadline, no
  retry on failure
- Concurrency: parallel probes on one connection all succeed
- Commitment ordering
"""

import asyncio
import time
from typing import Any

import pytest

from ledger_probe.client import Commitment
from ledger_probe.connection import LivenessResult, open_connection
from ledger_probe.errors import (
    ConfigurationError,
    InvalidEndpointError,
    NetworkUnreachable,
    RpcTimeout,
    ServerError,
)

URL = "https://api.devnet.solana.com"
VERSION_OK = {"jsonrpc": "2.0", "result": {"solana-core": "2.0.3", "feature-set": 3746964731}, "id": 1}

# ---------------------------------------------------------------------------
# Fake transports
# ---------------------------------------------------------------------------


class FakeTransport:
    def __init__(self, response: dict[str, Any], delay: float = 0.0) -> None:
        self._response = response
        self._delay = delay
        self.calls: list[dict[str, Any]] = []

    async def post_json(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(payload)
        if self._delay:
            await asyncio.sleep(self._delay)
        return self._response

    async def aclose(self) -> None:
        pass


class ErrorTransport:
    def __init__(self, exc: Exception) -> None:
        self._exc = exc
        self.calls = 0

    async def post_json(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        self.calls += 1
        raise self._exc

    async def aclose(self) -> None:
        pass


class HangingTransport:
    """Simulates an endpoint that accepts the request and never answers."""

    async def post_json(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        await asyncio.sleep(3600)
        raise AssertionError("unreachable")

    async def aclose(self) -> None:
        pass


# ---------------------------------------------------------------------------
# open_connection
# ---------------------------------------------------------------------------


class TestOpenConnection:
    @pytest.mark.parametrize(
        "url",
        ["https://api.devnet.solana.com", "http://localhost:8899", "http://127.0.0.1:8899/rpc"],
    )
    def test_valid_urls(self, url: str) -> None:
        connection = open_connection(url, transport=FakeTransport(VERSION_OK))
        assert connection.url == url

    @pytest.mark.parametrize(
        "url",
        ["", "not a url", "ftp://example.com", "api.devnet.solana.com", "http://"],
    )
    def test_malformed_urls(self, url: str) -> None:
        with pytest.raises(InvalidEndpointError):
            open_connection(url)

    def test_default_commitment_is_confirmed(self) -> None:
        assert open_connection(URL).commitment == Commitment.CONFIRMED

    def test_commitment_from_string(self) -> None:
        assert open_connection(URL, "Finalized").commitment == Commitment.FINALIZED

    def test_unknown_commitment(self) -> None:
        with pytest.raises(ConfigurationError):
            open_connection(URL, "max")

    def test_non_positive_timeout(self) -> None:
        with pytest.raises(ConfigurationError):
            open_connection(URL, timeout_s=0)

    def test_open_performs_no_io(self) -> None:
        transport = FakeTransport(VERSION_OK)
        open_connection(URL, transport=transport)
        assert transport.calls == []

    def test_repr(self) -> None:
        assert "confirmed" in repr(open_connection(URL))


# ---------------------------------------------------------------------------
# probe_liveness
# ---------------------------------------------------------------------------


class TestProbeLiveness:
    @pytest.mark.asyncio
    async def test_success(self) -> None:
        connection = open_connection(URL, transport=FakeTransport(VERSION_OK))
        result = await connection.probe_liveness()
        assert result.ok
        assert result.version is not None
        assert result.version.version == "2.0.3"
        assert isinstance(result.version.feature_set, int)
        assert result.error_code is None

    @pytest.mark.asyncio
    async def test_network_unreachable(self) -> None:
        transport = ErrorTransport(NetworkUnreachable("refused"))
        result = await open_connection(URL, transport=transport).probe_liveness()
        assert not result.ok
        assert result.error_code == "NETWORK_UNREACHABLE"
        assert result.version is None

    @pytest.mark.asyncio
    async def test_transport_timeout(self) -> None:
        transport = ErrorTransport(RpcTimeout("slow"))
        result = await open_connection(URL, transport=transport).probe_liveness()
        assert result.error_code == "TIMEOUT"

    @pytest.mark.asyncio
    async def test_protocol_error(self) -> None:
        transport = FakeTransport({"jsonrpc": "2.0", "result": {"version": 1}, "id": 1})
        result = await open_connection(URL, transport=transport).probe_liveness()
        assert result.error_code == "PROTOCOL_ERROR"

    @pytest.mark.asyncio
    async def test_server_error(self) -> None:
        transport = ErrorTransport(ServerError("HTTP 503"))
        result = await open_connection(URL, transport=transport).probe_liveness()
        assert result.error_code == "SERVER_ERROR"
        assert result.detail == "HTTP 503"

    @pytest.mark.asyncio
    async def test_rpc_error_object_is_server_error(self) -> None:
        transport = FakeTransport(
            {"jsonrpc": "2.0", "error": {"code": -32005, "message": "Node is unhealthy"}, "id": 1}
        )
        result = await open_connection(URL, transport=transport).probe_liveness()
        assert result.error_code == "SERVER_ERROR"

    @pytest.mark.asyncio
    async def test_hanging_endpoint_times_out_within_deadline(self) -> None:
        connection = open_connection(URL, timeout_s=0.2, transport=HangingTransport())
        started = time.monotonic()
        result = await connection.probe_liveness()
        elapsed = time.monotonic() - started
        assert result.error_code == "TIMEOUT"
        assert 0.15 <= elapsed < 1.0

    @pytest.mark.asyncio
    async def test_no_retry_on_failure(self) -> None:
        transport = ErrorTransport(NetworkUnreachable("refused"))
        await open_connection(URL, transport=transport).probe_liveness()
        assert transport.calls == 1

    @pytest.mark.asyncio
    async def test_get_version_raises(self) -> None:
        connection = open_connection(URL, transport=ErrorTransport(NetworkUnreachable("x")))
        with pytest.raises(NetworkUnreachable):
            await connection.get_version()

    @pytest.mark.asyncio
    async def test_get_version_hanging_raises_timeout(self) -> None:
        connection = open_connection(URL, timeout_s=0.05, transport=HangingTransport())
        with pytest.raises(RpcTimeout):
            await connection.get_version()

    def test_result_to_dict(self) -> None:
        result = LivenessResult(ok=False, error_code="TIMEOUT", detail="slow", elapsed_s=1.23456)
        assert result.to_dict() == {
            "ok": False,
            "elapsed_s": 1.235,
            "error_code": "TIMEOUT",
            "detail": "slow",
        }


# ---------------------------------------------------------------------------
# Concurrency and other calls
# ---------------------------------------------------------------------------


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_parallel_probes_share_connection(self) -> None:
        transport = FakeTransport(VERSION_OK, delay=0.05)
        connection = open_connection(URL, transport=transport)
        started = time.monotonic()
        results = await asyncio.gather(*(connection.probe_liveness() for _ in range(10)))
        elapsed = time.monotonic() - started
        assert all(r.ok for r in results)
        assert len(transport.calls) == 10
        # Calls overlap rather than queueing behind one another.
        assert elapsed < 0.4

    @pytest.mark.asyncio
    async def test_get_balance_uses_connection_commitment(self) -> None:
        transport = FakeTransport({"jsonrpc": "2.0", "result": {"context": {"slot": 1}, "value": 5}, "id": 1})
        connection = open_connection(URL, Commitment.FINALIZED, transport=transport)
        assert await connection.get_balance("addr") == 5
        assert transport.calls[0]["params"][1] == {"commitment": "finalized"}

    @pytest.mark.asyncio
    async def test_context_manager_closes_transport(self) -> None:
        closed: list[bool] = []

        class ClosingTransport(FakeTransport):
            async def aclose(self) -> None:
                closed.append(True)

        async with open_connection(URL, transport=ClosingTransport(VERSION_OK)) as connection:
            await connection.probe_liveness()
        assert closed == [True]


class TestCommitment:
    def test_ordering(self) -> None:
        assert Commitment.FINALIZED.satisfies(Commitment.CONFIRMED)
        assert Commitment.CONFIRMED.satisfies(Commitment.CONFIRMED)
        assert not Commitment.PROCESSED.satisfies(Commitment.CONFIRMED)
        assert Commitment.PROCESSED.rank < Commitment.CONFIRMED.rank < Commitment.FINALIZED.rank
