"""
tests/test_keys.py -- Unit tests for the ephemeral Ed25519 keypair.

Covers:
  - Export / recover keeps the same key
  - Recovery rejects wrong length, wrong scheme flag, non-base64 input
  - Transaction signatures verify against blake2b-256(intent || tx bytes)
"""

from __future__ import annotations

import base64

import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from auth.keys import ED25519_FLAG, TRANSACTION_INTENT, EphemeralKeyPair, blake2b256


def test_export_and_recover_same_key() -> None:
    kp = EphemeralKeyPair.generate()
    recovered = EphemeralKeyPair.from_secret_key(kp.export_secret_key())
    assert recovered.public_key_bytes() == kp.public_key_bytes()


def test_generate_yields_distinct_keys() -> None:
    assert EphemeralKeyPair.generate().public_key_bytes() != EphemeralKeyPair.generate().public_key_bytes()


def test_export_format() -> None:
    raw = base64.b64decode(EphemeralKeyPair.generate().export_secret_key())
    assert len(raw) == 33
    assert raw[0] == ED25519_FLAG


def test_sui_public_key_bytes_carry_flag() -> None:
    kp = EphemeralKeyPair.generate()
    assert kp.public_key_sui_bytes() == bytes([ED25519_FLAG]) + kp.public_key_bytes()
    assert int(kp.extended_public_key()) == int.from_bytes(kp.public_key_sui_bytes(), "big")


@pytest.mark.parametrize(
    "exported",
    [
        base64.b64encode(b"\x00" + b"\x01" * 31).decode(),  # too short
        base64.b64encode(b"\x01" + b"\x01" * 32).decode(),  # secp256k1 flag
        "%%%not-base64%%%",
    ],
)
def test_recover_rejects_bad_input(exported: str) -> None:
    with pytest.raises(ValueError):
        EphemeralKeyPair.from_secret_key(exported)


def test_signature_verifies_over_intent_digest() -> None:
    kp = EphemeralKeyPair.generate()
    tx_bytes = b"\x00\x01\x02transaction-data"
    serialized = base64.b64decode(kp.sign_transaction(tx_bytes))

    assert len(serialized) == 1 + 64 + 32
    assert serialized[0] == ED25519_FLAG
    signature, public_key = serialized[1:65], serialized[65:]
    assert public_key == kp.public_key_bytes()

    # Raises InvalidSignature on mismatch.
    Ed25519PublicKey.from_public_bytes(public_key).verify(signature, blake2b256(TRANSACTION_INTENT + tx_bytes))
