"""
Error taxonomy for the ledger probe client.

Every failure the client can signal is a ``LedgerProbeError`` carrying a
machine-readable ``error_code`` and a ``details`` dict for diagnostics.
Details never contain key material.

Categories:
    - Startup (fatal, no retry): ConfigurationError, InvalidKeyError
      (ParseError, KeyLengthError, KeyMismatchError), InvalidEndpointError.
    - Per-call RPC failures (caller decides): NetworkUnreachable,
      RpcTimeout, ProtocolError, ServerError.
    - Submission rejected by the network: SubmitError.

A confirmation that runs out of time is NOT an error. It is reported as
``ConfirmationStatus.TIMED_OUT`` on the result object, because the
transaction may still land after the caller stops waiting.
"""

from __future__ import annotations

from typing import Any

# Error codes
CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
KEY_PARSE_ERROR = "KEY_PARSE_ERROR"
KEY_LENGTH_ERROR = "KEY_LENGTH_ERROR"
KEY_MISMATCH_ERROR = "KEY_MISMATCH_ERROR"
INVALID_ENDPOINT = "INVALID_ENDPOINT"
NETWORK_UNREACHABLE = "NETWORK_UNREACHABLE"
TIMEOUT = "TIMEOUT"
PROTOCOL_ERROR = "PROTOCOL_ERROR"
SERVER_ERROR = "SERVER_ERROR"
SUBMIT_REJECTED = "SUBMIT_REJECTED"


class LedgerProbeError(Exception):
    """Base class for all client errors."""

    error_code = "UNKNOWN"

    def __init__(
        self,
        message: str,
        *,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        if error_code is not None:
            self.error_code = error_code
        self.details: dict[str, Any] = details or {}

    def to_dict(self) -> dict[str, object]:
        return {
            "error_code": self.error_code,
            "message": str(self),
            "details": dict(self.details),
        }


# =========================================================================
# Startup errors
# =========================================================================


class ConfigurationError(LedgerProbeError):
    """Missing or malformed configuration value."""

    error_code = CONFIGURATION_ERROR


class InvalidKeyError(LedgerProbeError):
    """Key material cannot produce a signer."""


class ParseError(InvalidKeyError):
    """A key token is not a base-10 integer in [0, 255]."""

    error_code = KEY_PARSE_ERROR


class KeyLengthError(InvalidKeyError):
    """Key material decodes to the wrong number of bytes."""

    error_code = KEY_LENGTH_ERROR


class KeyMismatchError(InvalidKeyError):
    """The embedded public key does not match the one derived from the seed."""

    error_code = KEY_MISMATCH_ERROR


class InvalidEndpointError(LedgerProbeError):
    """Endpoint URL is not a usable http(s) URL."""

    error_code = INVALID_ENDPOINT


# =========================================================================
# Per-call RPC errors
# =========================================================================


class RpcError(LedgerProbeError):
    """A remote call did not produce a usable result."""


class NetworkUnreachable(RpcError):
    """Connection-level failure (DNS, refused, TLS, reset)."""

    error_code = NETWORK_UNREACHABLE


class RpcTimeout(RpcError):
    """No response within the configured deadline."""

    error_code = TIMEOUT


class ProtocolError(RpcError):
    """Endpoint answered but the payload did not match the expected schema."""

    error_code = PROTOCOL_ERROR


class ServerError(RpcError):
    """Endpoint returned an explicit error status or JSON-RPC error object."""

    error_code = SERVER_ERROR


class SubmitError(LedgerProbeError):
    """The network rejected a transaction submission.

    Resubmitting the same bytes will fail the same way, so this is never
    retried automatically.
    """

    error_code = SUBMIT_REJECTED


# =========================================================================
# Classification
# =========================================================================

_TRANSIENT: tuple[type[LedgerProbeError], ...] = (NetworkUnreachable, RpcTimeout)


def is_transient(exc: BaseException) -> bool:
    """True for failures that may succeed on an identical retry.

    Only connection-level failures and timeouts qualify. Protocol and
    server errors, and rejections, are permanent for the same request.
    """
    return isinstance(exc, _TRANSIENT)
