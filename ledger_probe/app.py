"""
Process entry point.

``initialize()`` is the explicit startup step: it turns settings into a
signer and a (lazy) connection, with no printing and no network I/O, so
tests can call it freely. ``main()`` is the console script: load
settings, initialize, probe liveness, print the result.

Exit codes:
    0 = signer built and endpoint answered the probe
    1 = probe failed (network, timeout, protocol, server)
    2 = startup failed (configuration, key material, endpoint URL)
"""

from __future__ import annotations

import asyncio
import json
import sys
from dataclasses import dataclass
from pathlib import Path

import structlog

from ledger_probe.config import Settings
from ledger_probe.connection import Connection, LivenessResult, open_connection
from ledger_probe.errors import LedgerProbeError
from ledger_probe.logging import configure_logging
from ledger_probe.signer import KeypairSigner
from ledger_probe.transport import JsonRpcTransport

log = structlog.get_logger(__name__)

EXIT_OK = 0
EXIT_PROBE_FAILED = 1
EXIT_STARTUP_FAILED = 2


@dataclass(frozen=True)
class Session:
    """Everything startup produces: a signer and an unopened connection."""

    signer: KeypairSigner
    connection: Connection


def initialize(
    settings: Settings,
    *,
    transport: JsonRpcTransport | None = None,
) -> Session:
    """Build the signer, then the connection.

    The signer is built first so a bad key aborts before any connection
    object exists.

    Raises:
        InvalidKeyError: Malformed key material.
        InvalidEndpointError: Malformed endpoint URL.
        ConfigurationError: Invalid commitment or timeout.
    """
    signer = KeypairSigner.from_text(settings.private_key)
    connection = open_connection(
        settings.rpc_url,
        settings.commitment,
        timeout_s=settings.timeout_s,
        transport=transport,
    )
    log.info(
        "session_initialized",
        address=signer.address,
        url=settings.rpc_url,
        commitment=str(settings.commitment),
    )
    return Session(signer=signer, connection=connection)


async def run(session: Session) -> LivenessResult:
    """Probe the session's endpoint and release the connection."""
    async with session.connection as connection:
        return await connection.probe_liveness()


def main(argv: list[str] | None = None) -> int:
    """Console entry point. Takes no arguments."""
    args = sys.argv[1:] if argv is None else argv
    if args:
        print("ledger-probe takes no arguments", file=sys.stderr)
        return EXIT_STARTUP_FAILED

    try:
        settings = Settings.from_env(dotenv_path=Path.cwd() / ".env")
        configure_logging(settings.log_level, settings.log_format)
        session = initialize(settings)
    except LedgerProbeError as e:
        print(f"error: {e.error_code}: {e}", file=sys.stderr)
        return EXIT_STARTUP_FAILED

    print(f"address: {session.signer.address}")
    result = asyncio.run(run(session))
    print(f"probe: {json.dumps(result.to_dict(), sort_keys=True)}")
    return EXIT_OK if result.ok else EXIT_PROBE_FAILED


if __name__ == "__main__":
    sys.exit(main())
