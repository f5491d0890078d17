"""
Connection — a lazy session to one ledger JSON-RPC endpoint.

``open_connection()`` validates the URL and records the commitment
level. It performs no network I/O. The first request creates the pooled
HTTP client.

A Connection holds only immutable configuration (endpoint, commitment,
timeout) and a transport handle, so it is safe to share between
concurrent tasks.

Liveness:
    ``get_version()`` raises the typed RPC errors.
    ``probe_liveness()`` wraps it into a LivenessResult and never raises
    for the four probe failure modes. Neither retries: the probe is a
    diagnostic call and the caller owns retry policy.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from types import TracebackType
from typing import Awaitable, TypeVar

import httpx
import structlog

from ledger_probe.client import Commitment, LedgerClient, SignatureStatus, VersionInfo
from ledger_probe.errors import (
    ConfigurationError,
    InvalidEndpointError,
    RpcError,
    RpcTimeout,
)
from ledger_probe.jsonrpc_client import JsonRpcClient
from ledger_probe.transport import DEFAULT_TIMEOUT_S, HttpxTransport, JsonRpcTransport

log = structlog.get_logger(__name__)

T = TypeVar("T")

_ALLOWED_SCHEMES = frozenset({"http", "https"})


@dataclass(frozen=True)
class LivenessResult:
    """Outcome of one liveness probe.

    Attributes:
        ok: True if the endpoint returned a valid version descriptor.
        version: The descriptor on success, None on failure.
        error_code: Machine-readable failure category (NETWORK_UNREACHABLE,
            TIMEOUT, PROTOCOL_ERROR, SERVER_ERROR). None on success.
        detail: Human-readable failure detail. None on success.
        elapsed_s: Wall time spent on the probe.
    """

    ok: bool
    version: VersionInfo | None = None
    error_code: str | None = None
    detail: str | None = None
    elapsed_s: float = 0.0

    def to_dict(self) -> dict[str, object]:
        result: dict[str, object] = {"ok": self.ok, "elapsed_s": round(self.elapsed_s, 3)}
        if self.version is not None:
            result["version"] = self.version.to_dict()
        if self.error_code is not None:
            result["error_code"] = self.error_code
        if self.detail is not None:
            result["detail"] = self.detail
        return result


def validate_endpoint(url: str) -> str:
    """Check that ``url`` is an absolute http(s) URL with a host.

    Raises:
        InvalidEndpointError: If the URL is malformed.
    """
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, TypeError) as e:
        raise InvalidEndpointError(
            f"malformed endpoint URL: {e}",
            details={"url": url},
        ) from e
    if parsed.scheme not in _ALLOWED_SCHEMES or not parsed.host:
        raise InvalidEndpointError(
            "endpoint URL must be http(s) with a host",
            details={"url": url},
        )
    return url


def parse_commitment(value: Commitment | str) -> Commitment:
    """Accept a Commitment or its string value."""
    if isinstance(value, Commitment):
        return value
    try:
        return Commitment(str(value).strip().lower())
    except ValueError as e:
        raise ConfigurationError(
            f"unknown commitment level: {value!r}",
            details={"allowed": [c.value for c in Commitment]},
        ) from e


class Connection:
    """Session to one endpoint at a fixed commitment level.

    Prefer ``open_connection()`` over direct construction.
    """

    def __init__(
        self,
        url: str,
        commitment: Commitment,
        client: LedgerClient,
        *,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ) -> None:
        self._url = url
        self._commitment = commitment
        self._client = client
        self._timeout_s = timeout_s

    @property
    def url(self) -> str:
        return self._url

    @property
    def commitment(self) -> Commitment:
        return self._commitment

    @property
    def timeout_s(self) -> float:
        return self._timeout_s

    @property
    def client(self) -> LedgerClient:
        return self._client

    def __repr__(self) -> str:
        return f"Connection(url={self._url!r}, commitment={self._commitment.value!r})"

    # -----------------------------------------------------------------
    # Calls
    # -----------------------------------------------------------------

    async def _bounded(self, coro: Awaitable[T], what: str) -> T:
        """Await ``coro`` under the connection deadline.

        The transport has its own timeout; this outer bound guarantees
        the call cannot hang even if the transport never returns.
        """
        try:
            return await asyncio.wait_for(coro, timeout=self._timeout_s)
        except TimeoutError as e:
            raise RpcTimeout(
                f"{what} timed out after {self._timeout_s}s",
                details={"url": self._url, "timeout_s": self._timeout_s},
            ) from e

    async def get_version(self) -> VersionInfo:
        """Single ``getVersion`` round trip. Raises typed RPC errors."""
        return await self._bounded(self._client.get_version(), "getVersion")

    async def probe_liveness(self) -> LivenessResult:
        """Issue one version request and report the outcome.

        Never retries. Never raises for network, timeout, protocol or
        server failures; those are reported on the result.
        """
        started = time.monotonic()
        try:
            version = await self.get_version()
        except RpcError as e:
            elapsed = time.monotonic() - started
            log.warning(
                "liveness_probe_failed",
                url=self._url,
                error_code=e.error_code,
                detail=str(e),
                elapsed_s=round(elapsed, 3),
            )
            return LivenessResult(
                ok=False,
                error_code=e.error_code,
                detail=str(e),
                elapsed_s=elapsed,
            )

        elapsed = time.monotonic() - started
        log.info(
            "liveness_probe_ok",
            url=self._url,
            version=version.version,
            feature_set=version.feature_set,
            elapsed_s=round(elapsed, 3),
        )
        return LivenessResult(ok=True, version=version, elapsed_s=elapsed)

    async def get_balance(self, address: str) -> int:
        """Balance of ``address`` in lamports at this connection's commitment."""
        return await self._bounded(
            self._client.get_balance(address, self._commitment), "getBalance"
        )

    async def get_signature_status(self, signature: str) -> SignatureStatus | None:
        """Current status of ``signature``, or None if unknown to the node."""
        return await self._bounded(
            self._client.get_signature_status(signature), "getSignatureStatuses"
        )

    async def send_transaction(
        self,
        signed_tx_b64: str,
        preflight_commitment: Commitment | None = None,
    ) -> str:
        """One broadcast attempt. Retries live in ``confirmation.submit``."""
        return await self._bounded(
            self._client.send_transaction(
                signed_tx_b64, preflight_commitment or self._commitment
            ),
            "sendTransaction",
        )

    # -----------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------

    async def aclose(self) -> None:
        """Release the transport's pooled connections."""
        aclose = getattr(self._client, "aclose", None)
        if aclose is not None:
            await aclose()

    async def __aenter__(self) -> Connection:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()


def open_connection(
    url: str,
    commitment: Commitment | str = Commitment.CONFIRMED,
    *,
    timeout_s: float = DEFAULT_TIMEOUT_S,
    transport: JsonRpcTransport | None = None,
    client: LedgerClient | None = None,
) -> Connection:
    """Open a lazy connection to ``url``.

    No network I/O happens here.

    Args:
        url: http(s) JSON-RPC endpoint.
        commitment: Commitment level fixed for the connection's lifetime.
        timeout_s: Per-call deadline in seconds.
        transport: Injectable transport. Defaults to HttpxTransport.
        client: Injectable LedgerClient. Overrides ``transport``.

    Raises:
        InvalidEndpointError: If the URL is malformed.
        ConfigurationError: If the commitment or timeout is invalid.
    """
    validate_endpoint(url)
    level = parse_commitment(commitment)
    if timeout_s <= 0:
        raise ConfigurationError(
            "timeout_s must be positive",
            details={"timeout_s": timeout_s},
        )
    if client is None:
        client = JsonRpcClient(url, transport or HttpxTransport(timeout=timeout_s))
    return Connection(url, level, client, timeout_s=timeout_s)
