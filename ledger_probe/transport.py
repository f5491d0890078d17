"""
Transport protocol for JSON-RPC calls.

Defines the seam where concrete HTTP implementations plug in. The
JSON-RPC client depends on this protocol, not on httpx directly, so the
transport can be swapped for test fakes without changing parsing logic.

Concrete implementations:
    - HttpxTransport (default, pooled httpx.AsyncClient)
    - FakeTransport (tests, returns canned responses)

Error mapping (httpx → ledger_probe.errors):
    - httpx.TimeoutException → RpcTimeout
    - httpx.TransportError   → NetworkUnreachable
    - other httpx.HTTPError  → ProtocolError
    - HTTP status >= 400     → ServerError
    - body not a JSON object → ProtocolError
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

import httpx
import structlog

from ledger_probe.errors import (
    NetworkUnreachable,
    ProtocolError,
    RpcTimeout,
    ServerError,
)

log = structlog.get_logger(__name__)

DEFAULT_TIMEOUT_S = 10.0


@runtime_checkable
class JsonRpcTransport(Protocol):
    """Async transport for JSON-RPC POST requests."""

    async def post_json(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Send a JSON-RPC request and return the parsed response.

        Args:
            url: The JSON-RPC endpoint URL.
            payload: The JSON-RPC request body (jsonrpc, id, method, params).

        Returns:
            Parsed JSON response as a dict.

        Raises:
            RpcError: On transport-level failures, HTTP error statuses,
                or non-object response bodies.
        """
        ...

    async def aclose(self) -> None:
        ...


class HttpxTransport:
    """Default transport backed by one pooled ``httpx.AsyncClient``.

    The client is created on first use and shared by every call, so
    concurrent requests use separate pooled connections instead of
    queueing behind each other.

    Args:
        timeout: Request timeout in seconds (connect, read, write, pool).
        headers: Extra headers sent with every request.
        limits: Optional connection pool limits.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT_S,
        headers: dict[str, str] | None = None,
        limits: httpx.Limits | None = None,
    ) -> None:
        self._timeout = timeout
        self._headers = headers or {}
        self._limits = limits
        self._client: httpx.AsyncClient | None = None

    @property
    def timeout(self) -> float:
        return self._timeout

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            kwargs: dict[str, Any] = {"timeout": self._timeout}
            if self._limits is not None:
                kwargs["limits"] = self._limits
            self._client = httpx.AsyncClient(**kwargs)
        return self._client

    async def post_json(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Send JSON-RPC request via httpx."""
        method = payload.get("method")
        try:
            response = await self._get_client().post(
                url,
                json=payload,
                headers={
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                    **self._headers,
                },
            )
        except httpx.TimeoutException as e:
            raise RpcTimeout(
                f"request timed out after {self._timeout}s",
                details={"url": url, "method": method, "timeout_s": self._timeout},
            ) from e
        except httpx.TransportError as e:
            raise NetworkUnreachable(
                f"failed to reach {url}: {e}",
                details={"url": url, "method": method},
            ) from e
        except httpx.HTTPError as e:
            raise ProtocolError(
                f"HTTP error: {e}",
                details={"url": url, "method": method},
            ) from e

        if response.status_code >= 400:
            raise ServerError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                details={
                    "url": url,
                    "method": method,
                    "status_code": response.status_code,
                    "body_preview": response.text[:200] if response.text else "",
                },
            )

        try:
            result = response.json()
        except ValueError as e:
            raise ProtocolError(
                "response was not valid JSON",
                details={
                    "url": url,
                    "method": method,
                    "body_preview": response.text[:200] if response.text else "",
                },
            ) from e

        if not isinstance(result, dict):
            raise ProtocolError(
                "response JSON was not an object",
                details={"url": url, "method": method, "type": type(result).__name__},
            )

        log.debug("rpc_exchange", url=url, method=method, status_code=response.status_code)
        return result

    async def aclose(self) -> None:
        """Close the pooled client. Safe to call more than once."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
