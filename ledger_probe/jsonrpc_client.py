"""
JSON-RPC client — real network implementation of LedgerClient.

Translates JSON-RPC responses into VersionInfo / SignatureStatus values.
Uses an injectable transport (JsonRpcTransport) so the HTTP layer can be
swapped for test fakes without changing parsing logic.

No retry loops. No secrets. No ledger logic beyond response parsing.

Response conventions (JSON-RPC 2.0):
    - Success: {"jsonrpc": "2.0", "result": ..., "id": n}
    - Error:   {"jsonrpc": "2.0", "error": {"code": n, "message": "..."}, "id": n}

Each ``result`` is checked against a JSON schema; a mismatch is a
ProtocolError. An ``error`` object is a ServerError, except for
``sendTransaction`` where it means the network rejected the transaction
(SubmitError).
"""

from __future__ import annotations

import itertools
from typing import Any

import jsonschema  # type: ignore[import-untyped]

from ledger_probe.client import Commitment, SignatureStatus, VersionInfo
from ledger_probe.errors import ProtocolError, ServerError, SubmitError
from ledger_probe.transport import HttpxTransport, JsonRpcTransport

JSONRPC_VERSION = "2.0"

_request_ids = itertools.count(1)


def _next_request_id() -> int:
    return next(_request_ids)


# =====================================================================
# Result schemas
# =====================================================================

VERSION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["solana-core", "feature-set"],
    "properties": {
        "solana-core": {"type": "string", "minLength": 1},
        "feature-set": {"type": "integer"},
    },
}

SIGNATURE_SCHEMA: dict[str, Any] = {"type": "string", "minLength": 1}

SIGNATURE_STATUSES_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["value"],
    "properties": {
        "value": {
            "type": "array",
            "items": {
                "oneOf": [
                    {"type": "null"},
                    {
                        "type": "object",
                        "required": ["slot"],
                        "properties": {
                            "slot": {"type": "integer", "minimum": 0},
                            "confirmations": {"type": ["integer", "null"]},
                            "confirmationStatus": {
                                "enum": [c.value for c in Commitment] + [None],
                            },
                        },
                    },
                ],
            },
        },
    },
}

BALANCE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["value"],
    "properties": {"value": {"type": "integer", "minimum": 0}},
}


class JsonRpcClient:
    """Ledger JSON-RPC client implementing the LedgerClient protocol.

    Args:
        url: The JSON-RPC endpoint URL (e.g. "https://api.devnet.solana.com").
        transport: Injectable transport for HTTP POST. Defaults to
            HttpxTransport. Pass a FakeTransport for testing.
    """

    def __init__(
        self,
        url: str,
        transport: JsonRpcTransport | None = None,
    ) -> None:
        self._url = url
        self._transport = transport or HttpxTransport()

    @property
    def url(self) -> str:
        """The JSON-RPC endpoint URL."""
        return self._url

    @property
    def transport(self) -> JsonRpcTransport:
        return self._transport

    # -----------------------------------------------------------------
    # LedgerClient protocol methods
    # -----------------------------------------------------------------

    async def get_version(self) -> VersionInfo:
        """Fetch node version metadata (``getVersion``)."""
        response = await self._call("getVersion", [])
        return _parse_version(_unwrap(response, "getVersion"))

    async def send_transaction(
        self,
        signed_tx_b64: str,
        preflight_commitment: Commitment,
    ) -> str:
        """Broadcast a signed, base64-encoded transaction.

        Returns the transaction signature reported by the node.

        Raises:
            SubmitError: If the node answered with a JSON-RPC error.
        """
        response = await self._call(
            "sendTransaction",
            [
                signed_tx_b64,
                {
                    "encoding": "base64",
                    "preflightCommitment": str(preflight_commitment),
                },
            ],
        )
        error = response.get("error")
        if error is not None:
            raise SubmitError(
                _error_message(error),
                details=_error_details(error),
            )
        result = _unwrap(response, "sendTransaction")
        _validate(result, SIGNATURE_SCHEMA, "sendTransaction")
        signature: str = result
        return signature

    async def get_signature_status(self, signature: str) -> SignatureStatus | None:
        """Query one signature's status, searching full history.

        Returns None if the node does not know the signature (yet).
        """
        response = await self._call(
            "getSignatureStatuses",
            [[signature], {"searchTransactionHistory": True}],
        )
        return _parse_signature_statuses(_unwrap(response, "getSignatureStatuses"))

    async def get_balance(self, address: str, commitment: Commitment) -> int:
        """Account balance in lamports (``getBalance``)."""
        response = await self._call(
            "getBalance",
            [address, {"commitment": str(commitment)}],
        )
        result = _unwrap(response, "getBalance")
        _validate(result, BALANCE_SCHEMA, "getBalance")
        return int(result["value"])

    async def aclose(self) -> None:
        await self._transport.aclose()

    # -----------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------

    async def _call(self, method: str, params: list[Any]) -> dict[str, Any]:
        payload = {
            "jsonrpc": JSONRPC_VERSION,
            "id": _next_request_id(),
            "method": method,
            "params": params,
        }
        return await self._transport.post_json(self._url, payload)


# =====================================================================
# Response parsing (pure functions, no I/O)
# =====================================================================


def _error_message(error: Any) -> str:
    if isinstance(error, dict):
        message = error.get("message")
        if isinstance(message, str) and message:
            return message
    return "unknown JSON-RPC error"


def _error_details(error: Any) -> dict[str, Any]:
    if not isinstance(error, dict):
        return {"error": error}
    details: dict[str, Any] = {"rpc_code": error.get("code")}
    if "data" in error:
        details["data"] = error["data"]
    return details


def _unwrap(response: dict[str, Any], method: str) -> Any:
    """Return the ``result`` member or raise for an error envelope."""
    error = response.get("error")
    if error is not None:
        raise ServerError(
            f"{method} failed: {_error_message(error)}",
            details={"method": method, **_error_details(error)},
        )
    if "result" not in response:
        raise ProtocolError(
            f"{method} response has neither result nor error",
            details={"method": method},
        )
    return response["result"]


def _validate(instance: Any, schema: dict[str, Any], method: str) -> None:
    try:
        jsonschema.validate(instance=instance, schema=schema)
    except jsonschema.ValidationError as e:
        raise ProtocolError(
            f"{method} result does not match schema: {e.message}",
            details={"method": method, "path": list(e.absolute_path)},
        ) from e


def _parse_version(result: Any) -> VersionInfo:
    _validate(result, VERSION_SCHEMA, "getVersion")
    return VersionInfo(
        version=result["solana-core"],
        feature_set=int(result["feature-set"]),
    )


def _parse_signature_statuses(result: Any) -> SignatureStatus | None:
    """Parse the single-signature ``getSignatureStatuses`` result.

    Handles:
        - unknown signature (null entry, or empty value list)
        - processed / confirmed / finalized entries
        - entries carrying a ledger error (``err`` non-null)
    """
    _validate(result, SIGNATURE_STATUSES_SCHEMA, "getSignatureStatuses")
    values = result["value"]
    if not values or values[0] is None:
        return None

    entry = values[0]
    raw_status = entry.get("confirmationStatus")
    return SignatureStatus(
        slot=entry["slot"],
        confirmations=entry.get("confirmations"),
        confirmation_status=Commitment(raw_status) if raw_status is not None else None,
        err=entry.get("err"),
    )
