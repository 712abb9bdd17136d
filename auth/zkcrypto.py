"""
auth/zkcrypto.py -- zkLogin derivations: nonce, address seed, address, composite signature.

Every value here is a pure function of its inputs. Nothing is stored, nothing
touches the network. The login flow and the signing bridge both call into this
module, which is what keeps the address identical between proof generation and
every later signature.

Field elements:
  The zkLogin circuit works over the BN254 scalar field and hashes with
  Poseidon (core/poseidon.py). poseidon_hash() accepts up to 32 elements: more
  than 16 are hashed as H(H(first 16), H(rest)). Claim strings are padded with
  NUL to a fixed maximum length per claim, then packed big-endian into 31-byte
  chunks aligned to the end of the string, so only the first chunk can be short.

Derivations:
  nonce        = base64url(low 20 bytes of H(pk_hi, pk_lo, max_epoch, randomness))
  address seed = H(H_str("sub"), H_str(sub), H_str(aud), H(salt))
  address      = 0x || blake2b-256(0x05 || len(iss) || iss || seed as 32 bytes)

Composite signature:
  base64(0x05 || BCS(ZkLoginSignature)) where
  ZkLoginSignature = { inputs: { proofPoints { a, b, c }, issBase64Details
  { value, indexMod4 }, headerBase64, addressSeed }, maxEpoch: u64,
  userSignature: vector<u8> }.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import base64
import hashlib
from dataclasses import dataclass
from typing import Any

from jose import JWTError, jwt

from core import bcs
from core.errors import MalformedIdentityToken
from core.poseidon import BN254_FIELD_SIZE, MAX_INPUTS, poseidon

ZKLOGIN_FLAG = 0x05
NONCE_LENGTH = 27

MAX_KEY_CLAIM_NAME_LENGTH = 32
MAX_KEY_CLAIM_VALUE_LENGTH = 115
MAX_AUD_VALUE_LENGTH = 145
_PACK_WIDTH = 31


# ---------------------------------------------------------------------------
# Field hashing
# ---------------------------------------------------------------------------


def poseidon_hash(*elements: int) -> int:
    """Poseidon over 1..32 field elements, splitting above 16.

    Raises:
        ValueError: On no elements, more than 32, or an element outside the field.
    """
    if not elements:
        raise ValueError("poseidon_hash needs at least one element")
    if len(elements) <= MAX_INPUTS:
        return poseidon(list(elements))
    if len(elements) <= 2 * MAX_INPUTS:
        return poseidon([poseidon(list(elements[:MAX_INPUTS])), poseidon(list(elements[MAX_INPUTS:]))])
    raise ValueError(f"Cannot hash {len(elements)} elements, the limit is {2 * MAX_INPUTS}")


def hash_ascii_str_to_field(value: str, max_size: int) -> int:
    """Pad a claim string to max_size, pack it into 31-byte chunks, then hash.

    Raises:
        ValueError: If the encoded string is longer than max_size bytes.
    """
    raw = value.encode("utf-8")
    if len(raw) > max_size:
        raise ValueError(f"String {value!r} is longer than {max_size} bytes")
    padded = raw.ljust(max_size, b"\x00")
    head = max_size % _PACK_WIDTH
    pieces = [padded[:head]] if head else []
    pieces += [padded[i : i + _PACK_WIDTH] for i in range(head, max_size, _PACK_WIDTH)]
    return poseidon_hash(*(int.from_bytes(piece, "big") for piece in pieces))


# ---------------------------------------------------------------------------
# Randomness and nonce
# ---------------------------------------------------------------------------


def generate_nonce(public_key_sui_bytes: bytes, max_epoch: int, randomness: str) -> str:
    """Bind (ephemeral public key, expiry epoch, randomness) into an OAuth nonce.

    The identity provider echoes the nonce inside the id_token, and the proof
    commits to it, so a token issued for one session cannot authorize another.
    """
    pk = int.from_bytes(public_key_sui_bytes, "big")
    pk_hi, pk_lo = pk >> 128, pk & ((1 << 128) - 1)
    digest = poseidon_hash(pk_hi, pk_lo, max_epoch, int(randomness))
    low = (digest % (1 << 160)).to_bytes(20, "big")
    nonce = base64.urlsafe_b64encode(low).rstrip(b"=").decode("ascii")
    if len(nonce) != NONCE_LENGTH:
        raise ValueError(f"Nonce length {len(nonce)} != {NONCE_LENGTH}")
    return nonce


# ---------------------------------------------------------------------------
# Identity token claims
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class IdentityClaims:
    subject: str
    audience: str
    issuer: str
    nonce: str | None = None


def decode_identity_token(token: str) -> IdentityClaims:
    """Read the claims zkLogin needs from an id_token, without verifying it.

    Verification happens inside the proof: the prover checks the provider's
    signature, so the client only needs the claim values.

    Raises:
        MalformedIdentityToken: If the token cannot be decoded or lacks sub,
            aud or iss, or if aud is a list with other than one entry.
    """
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError as e:
        raise MalformedIdentityToken("Identity token could not be decoded.", detail=str(e)) from e

    sub = claims.get("sub")
    aud = claims.get("aud")
    iss = claims.get("iss")
    if isinstance(aud, list):
        if len(aud) != 1:
            raise MalformedIdentityToken("Identity token must carry exactly one audience.")
        aud = aud[0]
    if not sub or not aud or not iss:
        raise MalformedIdentityToken("Identity token is missing the sub, aud or iss claim.")
    return IdentityClaims(subject=str(sub), audience=str(aud), issuer=str(iss), nonce=claims.get("nonce"))


# ---------------------------------------------------------------------------
# Address derivation
# ---------------------------------------------------------------------------


def gen_address_seed(salt: int, name: str, value: str, aud: str) -> int:
    """Combine the user salt with the key claim and audience into the address seed."""
    return poseidon_hash(
        hash_ascii_str_to_field(name, MAX_KEY_CLAIM_NAME_LENGTH),
        hash_ascii_str_to_field(value, MAX_KEY_CLAIM_VALUE_LENGTH),
        hash_ascii_str_to_field(aud, MAX_AUD_VALUE_LENGTH),
        poseidon_hash(salt),
    )


def compute_address_from_seed(address_seed: int, issuer: str) -> str:
    # Google issues tokens with and without the scheme; the address uses one form.
    if issuer == "accounts.google.com":
        issuer = "https://accounts.google.com"
    iss = issuer.encode("utf-8")
    if len(iss) > 255:
        raise ValueError("Issuer is too long to encode")
    payload = bytes([ZKLOGIN_FLAG, len(iss)]) + iss + address_seed.to_bytes(32, "big")
    return "0x" + hashlib.blake2b(payload, digest_size=32).hexdigest()


def claims_to_address(claims: IdentityClaims, salt: int) -> str:
    seed = gen_address_seed(salt, "sub", claims.subject, claims.audience)
    return compute_address_from_seed(seed, claims.issuer)


def jwt_to_address(token: str, salt: int) -> str:
    """Derive the zkLogin address for an identity token and user salt."""
    return claims_to_address(decode_identity_token(token), salt)


# ---------------------------------------------------------------------------
# Composite signature
# ---------------------------------------------------------------------------


def validate_proof_bundle(proof: Any) -> dict[str, Any]:
    """Check the prover response has the fields the composite signature needs.

    Raises:
        ValueError: On any missing or mistyped field.
    """
    if not isinstance(proof, dict):
        raise ValueError("Proof bundle is not a JSON object")
    points = proof.get("proofPoints")
    if not isinstance(points, dict) or not all(k in points for k in ("a", "b", "c")):
        raise ValueError("Proof bundle is missing proofPoints a/b/c")
    if not all(isinstance(row, list) for row in points["b"]):
        raise ValueError("proofPoints.b must be a list of lists")
    details = proof.get("issBase64Details")
    if not isinstance(details, dict) or "value" not in details or "indexMod4" not in details:
        raise ValueError("Proof bundle is missing issBase64Details")
    if not isinstance(proof.get("headerBase64"), str):
        raise ValueError("Proof bundle is missing headerBase64")
    return proof


def get_zklogin_signature(proof: dict[str, Any], address_seed: int, max_epoch: int, user_signature: str) -> str:
    """Serialize proof, address seed, expiry epoch and ephemeral signature for the ledger."""
    validate_proof_bundle(proof)
    points = proof["proofPoints"]
    details = proof["issBase64Details"]

    inputs = b"".join(
        [
            bcs.vector(points["a"], lambda v: bcs.string(str(v))),
            bcs.vector(points["b"], lambda row: bcs.vector(row, lambda v: bcs.string(str(v)))),
            bcs.vector(points["c"], lambda v: bcs.string(str(v))),
            bcs.string(details["value"]),
            bcs.u8(int(details["indexMod4"])),
            bcs.string(proof["headerBase64"]),
            bcs.string(str(address_seed)),
        ]
    )
    body = inputs + bcs.u64(max_epoch) + bcs.byte_vector(base64.b64decode(user_signature))
    return base64.b64encode(bytes([ZKLOGIN_FLAG]) + body).decode("ascii")
