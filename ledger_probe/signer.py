"""
Signer — the secrets boundary.

Turns raw key material into an immutable Ed25519 signing identity.
Callers never see the private key after construction; they get a public
identity (raw bytes, hex, base58 address) and a ``sign()`` method.

Key material format:
    64 bytes = 32-byte Ed25519 seed followed by the 32-byte public key.
    Supplied as comma-separated decimal bytes (e.g. "80,83,11,...").

Construction is all-or-nothing: a malformed token raises ParseError,
the wrong byte count raises KeyLengthError, and an embedded public key
that does not match the seed raises KeyMismatchError. No partially valid
signer is ever returned.

Error messages report counts and positions, never byte values.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import base58
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    PublicFormat,
)

from ledger_probe.errors import KeyLengthError, KeyMismatchError, ParseError

SEED_LENGTH = 32
PUBLIC_KEY_LENGTH = 32
SECRET_KEY_LENGTH = SEED_LENGTH + PUBLIC_KEY_LENGTH
SIGNATURE_LENGTH = 64


# =========================================================================
# Protocol
# =========================================================================


@runtime_checkable
class Signer(Protocol):
    """Interface for transaction signing.

    Implementations manage key material internally and expose only
    public identifiers, which are safe for logging.
    """

    @property
    def public_key(self) -> bytes:
        """Raw 32-byte public key."""
        ...

    @property
    def address(self) -> str:
        """Base58-encoded public key (the on-ledger identity)."""
        ...

    def sign(self, payload: bytes) -> bytes:
        """Sign arbitrary bytes and return a 64-byte signature."""
        ...


# =========================================================================
# Key material parsing
# =========================================================================


def parse_key_material(text: str) -> bytes:
    """Parse comma-separated decimal byte values into key bytes.

    Args:
        text: e.g. "80,83,11,...". Whitespace around tokens is ignored.

    Returns:
        Exactly SECRET_KEY_LENGTH bytes.

    Raises:
        ParseError: If any token is not a base-10 integer in [0, 255].
        KeyLengthError: If the token count is not SECRET_KEY_LENGTH.
    """
    tokens = [token.strip() for token in text.split(",")]
    values: list[int] = []
    for position, token in enumerate(tokens):
        if not token.isdigit() or not token.isascii():
            raise ParseError(
                f"key token at position {position} is not a decimal byte",
                details={"position": position},
            )
        value = int(token, 10)
        if value > 255:
            raise ParseError(
                f"key token at position {position} is out of range [0, 255]",
                details={"position": position},
            )
        values.append(value)

    if len(values) != SECRET_KEY_LENGTH:
        raise KeyLengthError(
            f"key material must be {SECRET_KEY_LENGTH} bytes, got {len(values)}",
            details={"expected": SECRET_KEY_LENGTH, "actual": len(values)},
        )
    return bytes(values)


def _raw_public_bytes(public_key: Ed25519PublicKey) -> bytes:
    return public_key.public_bytes(Encoding.Raw, PublicFormat.Raw)


# =========================================================================
# Concrete signer
# =========================================================================


class KeypairSigner:
    """In-memory Ed25519 signer built from 64-byte key material.

    Immutable after construction and safe to share between tasks:
    signing holds no mutable state.
    """

    __slots__ = ("_private_key", "_public_key")

    def __init__(self, private_key: Ed25519PrivateKey) -> None:
        self._private_key = private_key
        self._public_key = _raw_public_bytes(private_key.public_key())

    @classmethod
    def from_secret_key(cls, secret_key: bytes, *, validate: bool = True) -> KeypairSigner:
        """Build a signer from seed + public key bytes.

        Raises:
            KeyLengthError: If ``secret_key`` is not 64 bytes.
            KeyMismatchError: If ``validate`` is set and the embedded
                public key does not match the seed.
        """
        if len(secret_key) != SECRET_KEY_LENGTH:
            raise KeyLengthError(
                f"key material must be {SECRET_KEY_LENGTH} bytes, got {len(secret_key)}",
                details={"expected": SECRET_KEY_LENGTH, "actual": len(secret_key)},
            )

        private_key = Ed25519PrivateKey.from_private_bytes(secret_key[:SEED_LENGTH])
        signer = cls(private_key)
        if validate and signer.public_key != secret_key[SEED_LENGTH:]:
            raise KeyMismatchError("embedded public key does not match the seed")
        return signer

    @classmethod
    def from_text(cls, text: str, *, validate: bool = True) -> KeypairSigner:
        """Build a signer from comma-separated decimal key bytes."""
        return cls.from_secret_key(parse_key_material(text), validate=validate)

    @classmethod
    def generate(cls) -> KeypairSigner:
        """Generate a fresh random signer (tests and throwaway keys)."""
        return cls(Ed25519PrivateKey.generate())

    @property
    def public_key(self) -> bytes:
        return self._public_key

    @property
    def public_key_hex(self) -> str:
        return self._public_key.hex()

    @property
    def address(self) -> str:
        return base58.b58encode(self._public_key).decode("ascii")

    def sign(self, payload: bytes) -> bytes:
        """Deterministic Ed25519 signature over ``payload``."""
        return self._private_key.sign(payload)

    def verify(self, signature: bytes, payload: bytes) -> bool:
        """Check a signature against this signer's public key."""
        return verify_signature(self._public_key, signature, payload)

    def __repr__(self) -> str:
        return f"KeypairSigner(address={self.address!r})"

    __str__ = __repr__


def verify_signature(public_key: bytes, signature: bytes, payload: bytes) -> bool:
    """Verify an Ed25519 signature given raw public key bytes."""
    try:
        Ed25519PublicKey.from_public_bytes(public_key).verify(signature, payload)
    except (InvalidSignature, ValueError):
        return False
    return True


def address_to_bytes(address: str) -> bytes:
    """Decode a base58 address back to raw public key bytes."""
    return base58.b58decode(address)
