"""
auth/keys.py -- Ephemeral Ed25519 keypairs for zkLogin sessions.

A keypair lives for one login session. It is generated when the login starts,
stored in the browser session namespace (auth/store.py) across the OAuth
redirect, and then kept inside the AccountData record until the session's
expiry epoch. The private key is never sent anywhere; only signatures and the
public key leave this module.

Export format: base64(flag || 32-byte seed), flag 0x00 = Ed25519. This is the
ledger's keystore format, so a key can be inspected with the standard tooling.

Signing: the ledger signs an intent message, not raw transaction bytes:
    digest    = blake2b-256(intent || tx_bytes), intent = [0, 0, 0]
    signature = base64(flag || ed25519(digest) || public key)

Uses the cryptography library for all Ed25519 operations.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import base64
import hashlib

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

ED25519_FLAG = 0x00
# IntentScope::TransactionData, IntentVersion::V0, AppId::Sui
TRANSACTION_INTENT = bytes([0, 0, 0])


def blake2b256(data: bytes) -> bytes:
    return hashlib.blake2b(data, digest_size=32).digest()


class EphemeralKeyPair:
    """Short-lived Ed25519 signing key for one zkLogin session."""

    def __init__(self, private_key: Ed25519PrivateKey) -> None:
        self._private_key = private_key

    @classmethod
    def generate(cls) -> EphemeralKeyPair:
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def from_secret_key(cls, exported: str) -> EphemeralKeyPair:
        """Recover a keypair from export_secret_key() output.

        Raises:
            ValueError: If the value is not base64, has the wrong length, or
                carries a scheme flag other than Ed25519.
        """
        try:
            raw = base64.b64decode(exported, validate=True)
        except (ValueError, TypeError) as e:
            raise ValueError("Ephemeral private key is not valid base64") from e
        if len(raw) != 33:
            raise ValueError(f"Invalid ephemeral private key length: {len(raw)} bytes (expected 33)")
        if raw[0] != ED25519_FLAG:
            raise ValueError(f"Unsupported key scheme flag: {raw[0]:#04x}")
        return cls(Ed25519PrivateKey.from_private_bytes(raw[1:]))

    def export_secret_key(self) -> str:
        seed = self._private_key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        )
        return base64.b64encode(bytes([ED25519_FLAG]) + seed).decode("ascii")

    def public_key_bytes(self) -> bytes:
        return self._private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )

    def public_key_sui_bytes(self) -> bytes:
        """Scheme flag followed by the raw public key -- the form the nonce commits to."""
        return bytes([ED25519_FLAG]) + self.public_key_bytes()

    def extended_public_key(self) -> str:
        """The public key as the decimal field element the prover expects."""
        return str(int.from_bytes(self.public_key_sui_bytes(), "big"))

    def sign_transaction(self, tx_bytes: bytes) -> str:
        """Sign built transaction bytes under the transaction intent.

        Returns the serialized signature (base64 of flag || signature || public key).
        """
        digest = blake2b256(TRANSACTION_INTENT + tx_bytes)
        signature = self._private_key.sign(digest)
        serialized = bytes([ED25519_FLAG]) + signature + self.public_key_bytes()
        return base64.b64encode(serialized).decode("ascii")
