"""
auth/models.py -- Domain dataclasses for zkLogin session entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in core/models.py -- dataclasses own domain shape; the store and the login /
signing flows do the work.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class SetupData:
    """Transient state carried across the OAuth redirect.

    Written when a login starts, read and deleted exactly once when the
    provider redirects back. A new login attempt overwrites a stale one.
    """

    provider: str  # "google", "twitch", "facebook", "university"
    expiry_epoch: int  # last epoch (exclusive) the session may sign in
    randomness: str  # decimal string, committed to by the nonce
    ephemeral_private_key: str  # EphemeralKeyPair.export_secret_key()


@dataclass(frozen=True)
class AccountData:
    """A logged-in zkLogin identity, usable for signing until expiry_epoch.

    Immutable once created -- logging in again produces a new record.

    user_address is derived from (salt, subject, audience, issuer). The proof
    in zk_proofs was generated for exactly that address, so every signing call
    re-derives it and refuses to sign if it no longer matches.
    """

    provider: str
    user_address: str
    zk_proofs: dict[str, Any]  # opaque prover bundle (proofPoints, issBase64Details, headerBase64)
    ephemeral_private_key: str
    user_salt: str  # decimal string
    subject: str  # "sub" claim
    audience: str  # "aud" claim
    issuer: str  # "iss" claim
    expiry_epoch: int
