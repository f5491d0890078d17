"""
Runtime settings and the secret loader.

Settings come from a ``.env`` file (if present) overlaid by the process
environment. Loading never mutates ``os.environ``.

The key material is kept as opaque text here. Parsing it into bytes is
the signer's job, so a malformed key surfaces as a key error with a
precise cause rather than a generic configuration error.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from dotenv import dotenv_values

from ledger_probe.client import Commitment
from ledger_probe.connection import parse_commitment
from ledger_probe.errors import ConfigurationError
from ledger_probe.transport import DEFAULT_TIMEOUT_S

PRIVATE_KEY_ENV = "PRIVATE_KEY"
RPC_URL_ENV = "LEDGER_RPC_URL"
COMMITMENT_ENV = "LEDGER_COMMITMENT"
TIMEOUT_ENV = "LEDGER_TIMEOUT_S"
LOG_LEVEL_ENV = "LOG_LEVEL"
LOG_FORMAT_ENV = "LOG_FORMAT"

DEFAULT_RPC_URL = "https://api.devnet.solana.com"
DEFAULT_COMMITMENT = Commitment.CONFIRMED
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FORMAT = "console"
LOG_FORMATS = frozenset({"console", "json"})


@dataclass(frozen=True)
class Settings:
    """Resolved configuration for one process run.

    ``private_key`` is excluded from ``repr`` so settings can be logged.
    """

    private_key: str = field(repr=False)
    rpc_url: str = DEFAULT_RPC_URL
    commitment: Commitment = DEFAULT_COMMITMENT
    timeout_s: float = DEFAULT_TIMEOUT_S
    log_level: str = DEFAULT_LOG_LEVEL
    log_format: str = DEFAULT_LOG_FORMAT

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        dotenv_path: str | Path | None = None,
    ) -> Settings:
        """Build settings from the environment.

        Args:
            environ: Mapping to read instead of ``os.environ``.
            dotenv_path: Optional ``.env`` file. Values in ``environ``
                take precedence over the file.

        Raises:
            ConfigurationError: If PRIVATE_KEY is missing or a value is
                malformed.
        """
        values: dict[str, str] = {}
        if dotenv_path is not None:
            values.update(
                {k: v for k, v in dotenv_values(dotenv_path).items() if v is not None}
            )
        values.update(os.environ if environ is None else environ)

        private_key = values.get(PRIVATE_KEY_ENV, "").strip()
        if not private_key:
            raise ConfigurationError(
                f"{PRIVATE_KEY_ENV} is not set",
                details={"variable": PRIVATE_KEY_ENV},
            )

        timeout_raw = values.get(TIMEOUT_ENV, str(DEFAULT_TIMEOUT_S))
        try:
            timeout_s = float(timeout_raw)
        except ValueError as e:
            raise ConfigurationError(
                f"{TIMEOUT_ENV} must be a number, got {timeout_raw!r}",
                details={"variable": TIMEOUT_ENV},
            ) from e
        if timeout_s <= 0:
            raise ConfigurationError(
                f"{TIMEOUT_ENV} must be positive, got {timeout_s}",
                details={"variable": TIMEOUT_ENV},
            )

        log_format = values.get(LOG_FORMAT_ENV, DEFAULT_LOG_FORMAT).strip().lower()
        if log_format not in LOG_FORMATS:
            raise ConfigurationError(
                f"{LOG_FORMAT_ENV} must be one of {sorted(LOG_FORMATS)}, got {log_format!r}",
                details={"variable": LOG_FORMAT_ENV},
            )

        return cls(
            private_key=private_key,
            rpc_url=values.get(RPC_URL_ENV, DEFAULT_RPC_URL).strip(),
            commitment=parse_commitment(values.get(COMMITMENT_ENV, DEFAULT_COMMITMENT)),
            timeout_s=timeout_s,
            log_level=values.get(LOG_LEVEL_ENV, DEFAULT_LOG_LEVEL).strip().upper(),
            log_format=log_format,
        )
