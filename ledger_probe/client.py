"""
Ledger client protocol — the network boundary.

Defines the interface the connection and confirmation layers depend on,
not a concrete implementation. This keeps both layers testable and keeps
``httpx`` out of business logic.

Concrete implementations:
    - JsonRpcClient (real, jsonrpc_client.py)
    - FakeClient (tests)

Methods:
    - get_version() → VersionInfo
    - send_transaction(signed_tx_b64, preflight_commitment) → signature
    - get_signature_status(signature) → SignatureStatus | None
    - get_balance(address, commitment) → int

Unlike result-only clients, failures are raised as the typed errors in
``ledger_probe.errors`` so callers can separate transient failures from
permanent ones.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol, runtime_checkable


# =========================================================================
# Commitment
# =========================================================================


class Commitment(StrEnum):
    """How finalized ledger state must be before it is trusted.

    Ordered: PROCESSED < CONFIRMED < FINALIZED.
    """

    PROCESSED = "processed"
    CONFIRMED = "confirmed"
    FINALIZED = "finalized"

    @property
    def rank(self) -> int:
        return _COMMITMENT_RANK[self]

    def satisfies(self, required: Commitment) -> bool:
        """True if this level is at least as final as ``required``."""
        return self.rank >= required.rank


_COMMITMENT_RANK: dict[Commitment, int] = {
    Commitment.PROCESSED: 0,
    Commitment.CONFIRMED: 1,
    Commitment.FINALIZED: 2,
}


# =========================================================================
# Result types
# =========================================================================


@dataclass(frozen=True)
class VersionInfo:
    """Server version descriptor returned by ``getVersion``.

    Attributes:
        version: Semantic version string of the node software.
        feature_set: Identifier of the protocol feature set.
    """

    version: str
    feature_set: int

    def to_dict(self) -> dict[str, object]:
        return {"version": self.version, "feature_set": self.feature_set}


@dataclass(frozen=True)
class SignatureStatus:
    """Status of a transaction signature as reported by the node.

    Attributes:
        slot: Slot in which the transaction was processed.
        confirmations: Confirmation count; None once rooted/finalized.
        confirmation_status: Commitment reached so far, if reported.
        err: Rejection reason from the ledger, or None on success.
    """

    slot: int
    confirmations: int | None = None
    confirmation_status: Commitment | None = None
    err: Any = None

    @property
    def failed(self) -> bool:
        return self.err is not None


# =========================================================================
# Protocol
# =========================================================================


@runtime_checkable
class LedgerClient(Protocol):
    """Interface for ledger network operations.

    Implementations raise NetworkUnreachable, RpcTimeout, ProtocolError
    or ServerError on failure. ``send_transaction`` raises SubmitError
    when the network rejects the transaction itself.
    """

    async def get_version(self) -> VersionInfo:
        ...

    async def send_transaction(
        self,
        signed_tx_b64: str,
        preflight_commitment: Commitment,
    ) -> str:
        ...

    async def get_signature_status(self, signature: str) -> SignatureStatus | None:
        ...

    async def get_balance(self, address: str, commitment: Commitment) -> int:
        ...
