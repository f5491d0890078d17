"""
ledger-probe: key-backed connection and confirmation client.

Public API:

    Signer (secrets boundary):
        - ``KeypairSigner`` — Ed25519 signer from 64-byte key material.
        - ``parse_key_material()`` — comma-separated decimal bytes → bytes.
        - ``Signer`` — protocol for dependency injection.

    Connection (network boundary):
        - ``open_connection()`` — lazy session at a fixed commitment.
        - ``Connection.probe_liveness()`` — one version round trip.
        - ``Commitment`` — processed < confirmed < finalized.

    Confirmation oracle:
        - ``submit()`` — broadcast with bounded retry of transient failures.
        - ``await_confirmation()`` — poll until reached, failed, or timed out.
        - ``send_and_confirm()`` — both in one call.

    Startup:
        - ``Settings`` — environment / .env configuration.
        - ``initialize()`` — settings → signer + connection.

    Errors: see ``ledger_probe.errors``.
"""

from ledger_probe.app import Session, initialize
from ledger_probe.client import (
    Commitment,
    LedgerClient,
    SignatureStatus,
    VersionInfo,
)
from ledger_probe.config import Settings
from ledger_probe.confirmation import (
    ConfirmationResult,
    ConfirmationStatus,
    SubmittedTransaction,
    await_confirmation,
    send_and_confirm,
    submit,
    transaction_signature,
)
from ledger_probe.connection import Connection, LivenessResult, open_connection
from ledger_probe.errors import (
    ConfigurationError,
    InvalidEndpointError,
    InvalidKeyError,
    KeyLengthError,
    KeyMismatchError,
    LedgerProbeError,
    NetworkUnreachable,
    ParseError,
    ProtocolError,
    RpcError,
    RpcTimeout,
    ServerError,
    SubmitError,
)
from ledger_probe.jsonrpc_client import JsonRpcClient
from ledger_probe.signer import KeypairSigner, Signer, parse_key_material
from ledger_probe.transport import HttpxTransport, JsonRpcTransport

__version__ = "0.1.0"

__all__ = [
    "Commitment",
    "ConfigurationError",
    "ConfirmationResult",
    "ConfirmationStatus",
    "Connection",
    "HttpxTransport",
    "InvalidEndpointError",
    "InvalidKeyError",
    "JsonRpcClient",
    "JsonRpcTransport",
    "KeyLengthError",
    "KeyMismatchError",
    "KeypairSigner",
    "LedgerClient",
    "LedgerProbeError",
    "LivenessResult",
    "NetworkUnreachable",
    "ParseError",
    "ProtocolError",
    "RpcError",
    "RpcTimeout",
    "ServerError",
    "Session",
    "Settings",
    "SignatureStatus",
    "Signer",
    "SubmitError",
    "SubmittedTransaction",
    "VersionInfo",
    "await_confirmation",
    "initialize",
    "open_connection",
    "parse_key_material",
    "send_and_confirm",
    "submit",
    "transaction_signature",
]
