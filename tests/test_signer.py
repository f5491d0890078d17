"""
Tests for the signer — key material parsing and Ed25519 identity.

No network. The sample key is a throwaway devnet fixture and must never
be used outside tests.

Test plan:
- Parsing: 64 tokens → 64 bytes, whitespace tolerated, 63 tokens →
  KeyLengthError, "xx" → ParseError, out-of-range → ParseError,
  empty token → ParseError, errors carry no key bytes
- Construction: golden public key, deterministic across constructions,
  wrong raw length → KeyLengthError, mismatched public half →
  KeyMismatchError (and accepted when validation is off)
- Signing: deterministic, 64 bytes, verifies, fails for other payloads
- Identity: base58 address round-trips, repr hides the secret
"""

import pytest

from ledger_probe.errors import (
    InvalidKeyError,
    KeyLengthError,
    KeyMismatchError,
    ParseError,
)
from ledger_probe.signer import (
    SECRET_KEY_LENGTH,
    SIGNATURE_LENGTH,
    KeypairSigner,
    Signer,
    address_to_bytes,
    parse_key_material,
    verify_signature,
)

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

SAMPLE_KEY_TEXT = (
    "80,83,11,9,145,1,91,144,244,223,98,141,59,249,88,33,"
    "153,25,201,147,156,91,95,119,243,156,94,140,196,71,237,36,"
    "63,108,109,236,195,131,233,185,220,251,212,47,126,10,250,90,"
    "192,76,94,87,130,78,96,21,245,253,63,34,12,116,126,191"
)
SAMPLE_PUBLIC_KEY_HEX = (
    "3f6c6decc383e9b9dcfbd42f7e0afa5ac04c5e57824e6015f5fd3f220c747ebf"
)


def _tokens() -> list[str]:
    return SAMPLE_KEY_TEXT.split(",")


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


class TestParseKeyMaterial:
    def test_sample_parses_to_64_bytes(self) -> None:
        raw = parse_key_material(SAMPLE_KEY_TEXT)
        assert len(raw) == SECRET_KEY_LENGTH
        assert raw[0] == 80
        assert raw[-1] == 191

    def test_whitespace_around_tokens_is_ignored(self) -> None:
        spaced = ", ".join(_tokens())
        assert parse_key_material(spaced) == parse_key_material(SAMPLE_KEY_TEXT)

    def test_63_values_is_length_error(self) -> None:
        short = ",".join(_tokens()[:63])
        with pytest.raises(KeyLengthError) as exc:
            parse_key_material(short)
        assert exc.value.details == {"expected": 64, "actual": 63}

    def test_65_values_is_length_error(self) -> None:
        long = SAMPLE_KEY_TEXT + ",1"
        with pytest.raises(KeyLengthError):
            parse_key_material(long)

    def test_non_numeric_token_is_parse_error(self) -> None:
        tokens = _tokens()
        tokens[5] = "xx"
        with pytest.raises(ParseError) as exc:
            parse_key_material(",".join(tokens))
        assert exc.value.details == {"position": 5}

    def test_out_of_range_token_is_parse_error(self) -> None:
        tokens = _tokens()
        tokens[0] = "256"
        with pytest.raises(ParseError):
            parse_key_material(",".join(tokens))

    def test_negative_token_is_parse_error(self) -> None:
        tokens = _tokens()
        tokens[0] = "-1"
        with pytest.raises(ParseError):
            parse_key_material(",".join(tokens))

    def test_empty_token_is_parse_error(self) -> None:
        with pytest.raises(ParseError):
            parse_key_material(SAMPLE_KEY_TEXT + ",")

    def test_empty_text_is_parse_error(self) -> None:
        with pytest.raises(ParseError):
            parse_key_material("")

    def test_parse_error_checked_before_length(self) -> None:
        """A bad token in a short list is reported as a parse error."""
        with pytest.raises(ParseError):
            parse_key_material("1,2,xx")

    def test_errors_are_invalid_key_errors(self) -> None:
        assert issubclass(ParseError, InvalidKeyError)
        assert issubclass(KeyLengthError, InvalidKeyError)
        assert issubclass(KeyMismatchError, InvalidKeyError)

    def test_error_message_does_not_leak_key_bytes(self) -> None:
        tokens = _tokens()
        tokens[63] = "oops"
        with pytest.raises(ParseError) as exc:
            parse_key_material(",".join(tokens))
        assert "145,1,91" not in str(exc.value)
        assert "145" not in str(exc.value.to_dict())


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


class TestConstruction:
    def test_golden_public_key(self) -> None:
        signer = KeypairSigner.from_text(SAMPLE_KEY_TEXT)
        assert signer.public_key_hex == SAMPLE_PUBLIC_KEY_HEX

    def test_public_key_is_trailing_half(self) -> None:
        raw = parse_key_material(SAMPLE_KEY_TEXT)
        signer = KeypairSigner.from_secret_key(raw)
        assert signer.public_key == raw[32:]

    def test_deterministic_identity(self) -> None:
        a = KeypairSigner.from_text(SAMPLE_KEY_TEXT)
        b = KeypairSigner.from_text(SAMPLE_KEY_TEXT)
        assert a.public_key == b.public_key
        assert a.address == b.address

    def test_short_raw_bytes_is_length_error(self) -> None:
        with pytest.raises(KeyLengthError):
            KeypairSigner.from_secret_key(bytes(32))

    def test_63_value_text_is_length_error(self) -> None:
        with pytest.raises(KeyLengthError):
            KeypairSigner.from_text(",".join(_tokens()[:63]))

    def test_xx_token_text_is_parse_error(self) -> None:
        tokens = _tokens()
        tokens[10] = "xx"
        with pytest.raises(ParseError):
            KeypairSigner.from_text(",".join(tokens))

    def test_mismatched_public_half_rejected(self) -> None:
        raw = bytearray(parse_key_material(SAMPLE_KEY_TEXT))
        raw[40] ^= 0xFF
        with pytest.raises(KeyMismatchError):
            KeypairSigner.from_secret_key(bytes(raw))

    def test_mismatch_allowed_without_validation(self) -> None:
        raw = bytearray(parse_key_material(SAMPLE_KEY_TEXT))
        raw[40] ^= 0xFF
        signer = KeypairSigner.from_secret_key(bytes(raw), validate=False)
        assert signer.public_key_hex == SAMPLE_PUBLIC_KEY_HEX

    def test_satisfies_protocol(self) -> None:
        assert isinstance(KeypairSigner.generate(), Signer)


# ---------------------------------------------------------------------------
# Signing
# ---------------------------------------------------------------------------


class TestSigning:
    def test_signature_is_64_bytes(self) -> None:
        signer = KeypairSigner.from_text(SAMPLE_KEY_TEXT)
        assert len(signer.sign(b"payload")) == SIGNATURE_LENGTH

    def test_signature_is_deterministic(self) -> None:
        signer = KeypairSigner.from_text(SAMPLE_KEY_TEXT)
        assert signer.sign(b"payload") == signer.sign(b"payload")

    def test_same_key_different_instances_same_signature(self) -> None:
        a = KeypairSigner.from_text(SAMPLE_KEY_TEXT)
        b = KeypairSigner.from_text(SAMPLE_KEY_TEXT)
        assert a.sign(b"payload") == b.sign(b"payload")

    def test_signature_verifies(self) -> None:
        signer = KeypairSigner.from_text(SAMPLE_KEY_TEXT)
        signature = signer.sign(b"payload")
        assert signer.verify(signature, b"payload")
        assert verify_signature(signer.public_key, signature, b"payload")

    @pytest.mark.parametrize("other", [b"payloaD", b"", b"payload\x00"])
    def test_signature_fails_for_other_payload(self, other: bytes) -> None:
        signer = KeypairSigner.from_text(SAMPLE_KEY_TEXT)
        signature = signer.sign(b"payload")
        assert not signer.verify(signature, other)

    def test_signature_fails_for_other_key(self) -> None:
        signer = KeypairSigner.from_text(SAMPLE_KEY_TEXT)
        other = KeypairSigner.generate()
        assert not other.verify(signer.sign(b"payload"), b"payload")

    def test_garbage_signature_does_not_raise(self) -> None:
        signer = KeypairSigner.from_text(SAMPLE_KEY_TEXT)
        assert not signer.verify(b"\x00" * 10, b"payload")


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


class TestIdentity:
    def test_address_decodes_to_public_key(self) -> None:
        signer = KeypairSigner.from_text(SAMPLE_KEY_TEXT)
        assert address_to_bytes(signer.address).hex() == SAMPLE_PUBLIC_KEY_HEX

    def test_repr_shows_address_only(self) -> None:
        signer = KeypairSigner.from_text(SAMPLE_KEY_TEXT)
        text = repr(signer)
        assert signer.address in text
        assert "80, 83" not in text
        assert str(signer) == text
