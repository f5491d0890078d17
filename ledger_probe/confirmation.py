"""
Confirmation oracle — submit signed transactions and wait for finality.

Two operations:
    - ``submit()`` — broadcast once, retrying only transient failures.
    - ``await_confirmation()`` — poll the signature status until the
      requested commitment is reached, the ledger reports a failure, or
      the deadline passes.

Why submit may retry:
    A signed transaction is identified by its first signature. Sending
    the same bytes again cannot create a second transaction: the node
    deduplicates by signature and answers "already processed". So a
    resend after a connection drop or timeout is safe. Rejections
    (SubmitError) are never retried, since the same bytes fail the same way.

Transaction state machine:
    PENDING → CONFIRMED → FINALIZED
    PENDING → FAILED
    PENDING → TIMED_OUT (terminal for the caller, inconclusive for the ledger)

TIMED_OUT is not FAILED. The transaction may still land after the
caller stops waiting. Callers must query again or resubmit the SAME
bytes, never a mutated transaction under the same signature.
"""

from __future__ import annotations

import asyncio
import base64
import time
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Awaitable, Callable

import base58
import structlog

from ledger_probe.client import Commitment, SignatureStatus
from ledger_probe.connection import Connection
from ledger_probe.errors import RpcError, SubmitError, is_transient
from ledger_probe.signer import SIGNATURE_LENGTH

log = structlog.get_logger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_S = 0.5
DEFAULT_DEADLINE_S = 30.0
DEFAULT_POLL_INTERVAL_S = 1.0

_ALREADY_PROCESSED_MARKERS = ("already been processed", "alreadyprocessed")


# =========================================================================
# Types
# =========================================================================


class ConfirmationStatus(StrEnum):
    """Terminal outcome of ``await_confirmation``.

    FINALIZED means the requested commitment level was reached (or
    exceeded), not necessarily the ``finalized`` level itself.
    """

    FINALIZED = "FINALIZED"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"


@dataclass(frozen=True)
class SubmittedTransaction:
    """A broadcast transaction awaiting confirmation.

    Attributes:
        signature: Base58 transaction signature (the ledger's tx id).
        commitment: Commitment level in effect at submission.
        attempts: Number of send attempts used (1 = no retry).
    """

    signature: str
    commitment: Commitment
    attempts: int = 1


@dataclass(frozen=True)
class ConfirmationResult:
    """Outcome of waiting for a submitted transaction.

    Attributes:
        status: FINALIZED, FAILED or TIMED_OUT.
        signature: The transaction signature that was tracked.
        commitment: The commitment level that was requested.
        slot: Slot of the last observed status, if any.
        confirmation_status: Last commitment level observed, if any.
        reason: Ledger rejection reason (FAILED) or why waiting stopped
            (TIMED_OUT). None on FINALIZED.
        polls: Number of status requests issued.
    """

    status: ConfirmationStatus
    signature: str
    commitment: Commitment
    slot: int | None = None
    confirmation_status: Commitment | None = None
    reason: Any = None
    polls: int = 0

    @property
    def conclusive(self) -> bool:
        """False only for TIMED_OUT, where the outcome is still unknown."""
        return self.status != ConfirmationStatus.TIMED_OUT

    def to_dict(self) -> dict[str, object]:
        result: dict[str, object] = {
            "status": str(self.status),
            "signature": self.signature,
            "commitment": str(self.commitment),
            "polls": self.polls,
        }
        if self.slot is not None:
            result["slot"] = self.slot
        if self.confirmation_status is not None:
            result["confirmation_status"] = str(self.confirmation_status)
        if self.reason is not None:
            result["reason"] = self.reason
        return result


# =========================================================================
# Wire helpers
# =========================================================================


def _decode_shortvec(data: bytes) -> tuple[int, int]:
    """Decode a compact-u16 length prefix. Returns (value, bytes_used)."""
    value = 0
    for index in range(3):
        if index >= len(data):
            raise ValueError("truncated length prefix")
        byte = data[index]
        value |= (byte & 0x7F) << (7 * index)
        if not byte & 0x80:
            return value, index + 1
    raise ValueError("length prefix longer than 3 bytes")


def transaction_signature(signed_tx: bytes) -> str:
    """Base58 of the first signature in a serialized signed transaction.

    Wire layout: compact-u16 signature count, then 64-byte signatures,
    then the message. The first signature identifies the transaction.

    Raises:
        ValueError: If the bytes do not start with at least one signature.
    """
    count, offset = _decode_shortvec(signed_tx)
    if count < 1:
        raise ValueError("signed transaction carries no signatures")
    if len(signed_tx) < offset + SIGNATURE_LENGTH:
        raise ValueError("signed transaction is shorter than its first signature")
    first = signed_tx[offset : offset + SIGNATURE_LENGTH]
    if not any(first):
        raise ValueError("first signature is empty (transaction is unsigned)")
    return base58.b58encode(first).decode("ascii")


def _is_already_processed(error: SubmitError) -> bool:
    haystack = f"{error} {error.details.get('data', '')}".lower()
    return any(marker in haystack for marker in _ALREADY_PROCESSED_MARKERS)


# =========================================================================
# submit()
# =========================================================================


async def submit(
    connection: Connection,
    signed_tx: bytes,
    commitment: Commitment | None = None,
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    backoff_s: float = DEFAULT_BACKOFF_S,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> SubmittedTransaction:
    """Broadcast a signed transaction, retrying transient failures.

    Attempts are strictly sequential; the delay before attempt ``n + 1``
    is ``backoff_s * 2 ** (n - 1)``. A node answering "already processed"
    means an earlier send landed, so the submission resolves to the
    signature embedded in ``signed_tx``.

    Args:
        connection: Open connection to the ledger.
        signed_tx: Serialized, fully signed transaction bytes.
        commitment: Preflight commitment. Defaults to the connection's.
        max_attempts: Total send attempts, including the first.
        backoff_s: Base delay for exponential backoff.
        sleep: Injectable sleep for tests.

    Returns:
        SubmittedTransaction with the signature and attempts used.

    Raises:
        SubmitError: The network rejected the transaction, or
            ``signed_tx`` is not a signed transaction (nothing is sent).
        NetworkUnreachable / RpcTimeout: Still failing after max_attempts.
        ProtocolError / ServerError: Not retried.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got: {max_attempts}")

    level = commitment or connection.commitment
    try:
        expected_signature = transaction_signature(signed_tx)
    except ValueError as e:
        raise SubmitError(
            f"not a signed transaction: {e}",
            details={"reason": str(e), "length": len(signed_tx)},
        ) from e
    encoded = base64.b64encode(signed_tx).decode("ascii")

    for attempt in range(1, max_attempts + 1):
        try:
            signature = await connection.send_transaction(encoded, level)
        except SubmitError as e:
            if _is_already_processed(e):
                log.info(
                    "submit_deduplicated",
                    signature=expected_signature,
                    attempt=attempt,
                )
                return SubmittedTransaction(expected_signature, level, attempt)
            log.warning(
                "submit_rejected",
                signature=expected_signature,
                attempt=attempt,
                detail=str(e),
            )
            raise
        except RpcError as e:
            if not is_transient(e) or attempt == max_attempts:
                raise
            delay = backoff_s * 2 ** (attempt - 1)
            log.warning(
                "submit_retry",
                signature=expected_signature,
                attempt=attempt,
                error_code=e.error_code,
                delay_s=delay,
            )
            await sleep(delay)
            continue

        if signature != expected_signature:
            log.warning(
                "submit_signature_mismatch",
                expected=expected_signature,
                reported=signature,
            )
        log.info("submit_accepted", signature=signature, attempt=attempt)
        return SubmittedTransaction(signature, level, attempt)

    # Unreachable: the loop either returns or raises on the last attempt.
    raise AssertionError("submit loop exited without a result")


# =========================================================================
# await_confirmation()
# =========================================================================


def _observed_level(status: SignatureStatus) -> Commitment:
    if status.confirmation_status is not None:
        return status.confirmation_status
    # Older nodes omit confirmationStatus; null confirmations means rooted.
    if status.confirmations is None:
        return Commitment.FINALIZED
    return Commitment.PROCESSED


async def _poll_once(
    connection: Connection,
    signature: str,
    budget: float | None,
    cancel: asyncio.Event | None,
) -> tuple[str | None, SignatureStatus | None]:
    """Issue one status request, racing it against ``cancel`` and ``budget``.

    Returns ``(interrupted_by, status)``. ``interrupted_by`` is
    ``"cancelled"`` or ``"deadline"`` when waiting stopped first (the
    request is then cancelled), and None when the request completed.
    A ``budget`` of None leaves only the connection timeout in force.
    """
    request = asyncio.ensure_future(connection.get_signature_status(signature))
    waiters: set[asyncio.Future[Any]] = {request}
    watcher: asyncio.Future[Any] | None = None
    if cancel is not None:
        watcher = asyncio.ensure_future(cancel.wait())
        waiters.add(watcher)
    try:
        done, _ = await asyncio.wait(
            waiters, timeout=budget, return_when=asyncio.FIRST_COMPLETED
        )
    finally:
        for task in waiters:
            if not task.done():
                task.cancel()

    if request in done:
        return None, request.result()
    if watcher is not None and watcher in done:
        return "cancelled", None
    return "deadline", None


async def _pause(delay: float, cancel: asyncio.Event | None) -> bool:
    """Sleep for ``delay``; return True if ``cancel`` fired first."""
    if cancel is None:
        await asyncio.sleep(delay)
        return False
    try:
        await asyncio.wait_for(cancel.wait(), timeout=delay)
    except TimeoutError:
        return False
    return True


async def await_confirmation(
    connection: Connection,
    submitted: SubmittedTransaction,
    commitment: Commitment | None = None,
    *,
    deadline_s: float = DEFAULT_DEADLINE_S,
    poll_interval_s: float = DEFAULT_POLL_INTERVAL_S,
    cancel: asyncio.Event | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> ConfirmationResult:
    """Poll until the transaction reaches ``commitment``, fails, or time runs out.

    The first status check always happens, so ``deadline_s=0`` issues
    exactly one request. Every later request and every wait is bounded by
    the remaining deadline, and setting ``cancel`` interrupts either one,
    including a status request already in flight.

    Transient poll failures (network, timeout) are logged and polling
    continues. Protocol and server errors propagate.

    Args:
        connection: Open connection to the ledger.
        submitted: Result of ``submit()``.
        commitment: Level to wait for. Defaults to the submission's.
        deadline_s: Total time budget in seconds (>= 0).
        poll_interval_s: Delay between status checks.
        cancel: Optional event; setting it stops waiting promptly.
        clock: Injectable monotonic clock.

    Returns:
        ConfirmationResult. TIMED_OUT is returned, not raised.
    """
    if deadline_s < 0:
        raise ValueError(f"deadline_s must be >= 0, got: {deadline_s}")
    if poll_interval_s <= 0:
        raise ValueError(f"poll_interval_s must be > 0, got: {poll_interval_s}")

    target = commitment or submitted.commitment
    signature = submitted.signature
    deadline_at = clock() + deadline_s
    polls = 0
    last: SignatureStatus | None = None
    last_error: str | None = None

    def _result(status: ConfirmationStatus, reason: Any = None) -> ConfirmationResult:
        return ConfirmationResult(
            status=status,
            signature=signature,
            commitment=target,
            slot=last.slot if last is not None else None,
            confirmation_status=_observed_level(last) if last is not None else None,
            reason=reason,
            polls=polls,
        )

    def _timed_out() -> ConfirmationResult:
        log.info("confirmation_timed_out", signature=signature, polls=polls)
        return _result(
            ConfirmationStatus.TIMED_OUT,
            last_error or f"deadline of {deadline_s}s elapsed",
        )

    while True:
        remaining = deadline_at - clock()
        if polls and remaining <= 0:
            return _timed_out()
        polls += 1
        try:
            # The first check runs even with no time left; only the
            # connection timeout bounds it then.
            interrupted_by, status = await _poll_once(
                connection, signature, remaining if remaining > 0 else None, cancel
            )
        except RpcError as e:
            if not is_transient(e):
                raise
            last_error = str(e)
            log.warning(
                "confirmation_poll_failed",
                signature=signature,
                error_code=e.error_code,
                poll=polls,
            )
        else:
            if interrupted_by == "cancelled":
                log.info("confirmation_cancelled", signature=signature, polls=polls)
                return _result(ConfirmationStatus.TIMED_OUT, "cancelled")
            if interrupted_by == "deadline":
                return _timed_out()
            last_error = None
            if status is not None:
                last = status
                if status.failed:
                    log.info("confirmation_failed", signature=signature, err=status.err)
                    return _result(ConfirmationStatus.FAILED, status.err)
                if _observed_level(status).satisfies(target):
                    log.info(
                        "confirmation_reached",
                        signature=signature,
                        commitment=str(target),
                        slot=status.slot,
                        polls=polls,
                    )
                    return _result(ConfirmationStatus.FINALIZED)

        remaining = deadline_at - clock()
        if remaining <= 0:
            return _timed_out()
        if await _pause(min(poll_interval_s, remaining), cancel):
            log.info("confirmation_cancelled", signature=signature, polls=polls)
            return _result(ConfirmationStatus.TIMED_OUT, "cancelled")


async def send_and_confirm(
    connection: Connection,
    signed_tx: bytes,
    commitment: Commitment | None = None,
    *,
    deadline_s: float = DEFAULT_DEADLINE_S,
    poll_interval_s: float = DEFAULT_POLL_INTERVAL_S,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    backoff_s: float = DEFAULT_BACKOFF_S,
    cancel: asyncio.Event | None = None,
) -> ConfirmationResult:
    """``submit()`` followed by ``await_confirmation()``."""
    submitted = await submit(
        connection,
        signed_tx,
        commitment,
        max_attempts=max_attempts,
        backoff_s=backoff_s,
    )
    return await await_confirmation(
        connection,
        submitted,
        commitment,
        deadline_s=deadline_s,
        poll_interval_s=poll_interval_s,
        cancel=cancel,
    )
