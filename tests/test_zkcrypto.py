"""
tests/test_zkcrypto.py -- Unit tests for the zkLogin derivations and BCS writer.

Covers:
  - Nonce: fixed length, URL-safe alphabet, binds key / epoch / randomness
  - Identity token claim extraction and its rejection rules
  - Address seed and address: determinism, format, issuer normalization
  - Composite signature layout: flag, max epoch, trailing user signature
  - BCS primitives the composite signature is built from
"""

from __future__ import annotations

import base64
import re

import pytest

from auth.keys import EphemeralKeyPair
from auth.zkcrypto import (
    BN254_FIELD_SIZE,
    NONCE_LENGTH,
    ZKLOGIN_FLAG,
    IdentityClaims,
    claims_to_address,
    compute_address_from_seed,
    decode_identity_token,
    gen_address_seed,
    generate_nonce,
    get_zklogin_signature,
    hash_ascii_str_to_field,
    jwt_to_address,
    poseidon_hash,
    validate_proof_bundle,
)
from conftest import GOOGLE_CLIENT_ID, GOOGLE_ISSUER, PROOF_BUNDLE, TEST_SUBJECT
from core import bcs
from core.errors import MalformedIdentityToken
from core.poseidon import poseidon

_ADDRESS_RE = re.compile(r"^0x[0-9a-f]{64}$")
SALT = 129390038577185583942388216820280642146


@pytest.fixture(scope="module")
def keypair() -> EphemeralKeyPair:
    return EphemeralKeyPair.generate()


class TestFieldHash:
    def test_result_is_in_field(self) -> None:
        assert 0 <= poseidon_hash(1, 2, 3) < BN254_FIELD_SIZE

    def test_order_matters(self) -> None:
        assert poseidon_hash(1, 2) != poseidon_hash(2, 1)

    def test_arity_matters(self) -> None:
        assert poseidon_hash(0) != poseidon_hash(0, 0)

    def test_empty_input_rejected(self) -> None:
        with pytest.raises(ValueError):
            poseidon_hash()

    def test_out_of_field_element_rejected(self) -> None:
        with pytest.raises(ValueError):
            poseidon_hash(BN254_FIELD_SIZE)

    def test_string_longer_than_max_rejected(self) -> None:
        with pytest.raises(ValueError):
            hash_ascii_str_to_field("x" * 33, 32)

    def test_matches_poseidon_for_small_arity(self) -> None:
        assert poseidon_hash(1, 2) == poseidon([1, 2])

    def test_more_than_sixteen_elements_hashed_in_two_halves(self) -> None:
        elements = list(range(1, 18))
        assert poseidon_hash(*elements) == poseidon([poseidon(elements[:16]), poseidon(elements[16:])])

    def test_more_than_thirty_two_elements_rejected(self) -> None:
        with pytest.raises(ValueError):
            poseidon_hash(*range(33))

    def test_string_chunks_align_to_the_end(self) -> None:
        # 32 bytes pack as a 1-byte head chunk then one 31-byte chunk.
        tail = int.from_bytes(b"ub" + b"\x00" * 29, "big")
        assert hash_ascii_str_to_field("sub", 32) == poseidon([ord("s"), tail])

    def test_string_hash_pads_with_nul(self) -> None:
        assert hash_ascii_str_to_field("ab", 31) == poseidon([int.from_bytes(b"ab" + b"\x00" * 29, "big")])


class TestNonce:
    def test_length_and_alphabet(self, keypair: EphemeralKeyPair) -> None:
        nonce = generate_nonce(keypair.public_key_sui_bytes(), 12, "123456789")
        assert len(nonce) == NONCE_LENGTH
        assert re.fullmatch(r"[A-Za-z0-9_-]+", nonce)

    def test_deterministic(self, keypair: EphemeralKeyPair) -> None:
        pk = keypair.public_key_sui_bytes()
        assert generate_nonce(pk, 12, "42") == generate_nonce(pk, 12, "42")

    def test_binds_every_input(self, keypair: EphemeralKeyPair) -> None:
        pk = keypair.public_key_sui_bytes()
        base = generate_nonce(pk, 12, "42")
        assert generate_nonce(pk, 13, "42") != base
        assert generate_nonce(pk, 12, "43") != base
        assert generate_nonce(EphemeralKeyPair.generate().public_key_sui_bytes(), 12, "42") != base


    def test_encodes_low_160_bits_of_poseidon(self, keypair: EphemeralKeyPair) -> None:
        pk = int.from_bytes(keypair.public_key_sui_bytes(), "big")
        digest = poseidon([pk >> 128, pk & ((1 << 128) - 1), 12, 42])
        low = (digest % (1 << 160)).to_bytes(20, "big")
        expected = base64.urlsafe_b64encode(low).rstrip(b"=").decode("ascii")
        assert generate_nonce(keypair.public_key_sui_bytes(), 12, "42") == expected


class TestDecodeIdentityToken:
    def test_reads_claims(self, id_token_factory) -> None:
        claims = decode_identity_token(id_token_factory(nonce="abc"))
        assert claims == IdentityClaims(TEST_SUBJECT, GOOGLE_CLIENT_ID, GOOGLE_ISSUER, "abc")

    def test_single_entry_audience_list(self, id_token_factory) -> None:
        claims = decode_identity_token(id_token_factory(aud=[GOOGLE_CLIENT_ID]))
        assert claims.audience == GOOGLE_CLIENT_ID

    def test_multi_entry_audience_rejected(self, id_token_factory) -> None:
        with pytest.raises(MalformedIdentityToken):
            decode_identity_token(id_token_factory(aud=[GOOGLE_CLIENT_ID, "other"]))

    def test_missing_subject_rejected(self, id_token_factory) -> None:
        with pytest.raises(MalformedIdentityToken):
            decode_identity_token(id_token_factory(sub=""))

    def test_garbage_rejected(self) -> None:
        with pytest.raises(MalformedIdentityToken):
            decode_identity_token("not-a-jwt")


class TestAddress:
    def test_format(self, id_token_factory) -> None:
        assert _ADDRESS_RE.match(jwt_to_address(id_token_factory(), SALT))

    def test_deterministic_and_matches_claims_path(self, id_token_factory) -> None:
        token = id_token_factory()
        claims = decode_identity_token(token)
        assert jwt_to_address(token, SALT) == claims_to_address(claims, SALT)

    def test_salt_subject_and_audience_change_address(self) -> None:
        base = claims_to_address(IdentityClaims(TEST_SUBJECT, GOOGLE_CLIENT_ID, GOOGLE_ISSUER), SALT)
        assert claims_to_address(IdentityClaims(TEST_SUBJECT, GOOGLE_CLIENT_ID, GOOGLE_ISSUER), SALT + 1) != base
        assert claims_to_address(IdentityClaims("other-sub", GOOGLE_CLIENT_ID, GOOGLE_ISSUER), SALT) != base
        assert claims_to_address(IdentityClaims(TEST_SUBJECT, "other-aud", GOOGLE_ISSUER), SALT) != base

    def test_issuer_changes_address(self) -> None:
        seed = gen_address_seed(SALT, "sub", TEST_SUBJECT, GOOGLE_CLIENT_ID)
        assert compute_address_from_seed(seed, GOOGLE_ISSUER) != compute_address_from_seed(seed, "https://id.twitch.tv/oauth2")

    def test_google_issuer_without_scheme_normalized(self) -> None:
        seed = gen_address_seed(SALT, "sub", TEST_SUBJECT, GOOGLE_CLIENT_ID)
        assert compute_address_from_seed(seed, "accounts.google.com") == compute_address_from_seed(seed, GOOGLE_ISSUER)

    def test_seed_combines_claim_hashes_and_salt(self) -> None:
        expected = poseidon(
            [
                hash_ascii_str_to_field("sub", 32),
                hash_ascii_str_to_field(TEST_SUBJECT, 115),
                hash_ascii_str_to_field(GOOGLE_CLIENT_ID, 145),
                poseidon([SALT]),
            ]
        )
        assert gen_address_seed(SALT, "sub", TEST_SUBJECT, GOOGLE_CLIENT_ID) == expected

    def test_seed_recomputes_stored_address(self) -> None:
        claims = IdentityClaims(TEST_SUBJECT, GOOGLE_CLIENT_ID, GOOGLE_ISSUER)
        seed = gen_address_seed(SALT, "sub", claims.subject, claims.audience)
        assert compute_address_from_seed(seed, claims.issuer) == claims_to_address(claims, SALT)


class TestCompositeSignature:
    def test_layout(self, keypair: EphemeralKeyPair) -> None:
        user_sig = keypair.sign_transaction(b"\x00tx")
        seed = gen_address_seed(SALT, "sub", TEST_SUBJECT, GOOGLE_CLIENT_ID)
        raw = base64.b64decode(get_zklogin_signature(PROOF_BUNDLE, seed, 12, user_sig))

        user_sig_bytes = base64.b64decode(user_sig)
        assert raw[0] == ZKLOGIN_FLAG
        assert raw.endswith(bcs.byte_vector(user_sig_bytes))
        tail = len(bcs.byte_vector(user_sig_bytes))
        assert raw[-tail - 8 : -tail] == bcs.u64(12)
        assert str(seed).encode() in raw

    def test_malformed_bundle_rejected(self) -> None:
        with pytest.raises(ValueError):
            validate_proof_bundle({"proofPoints": {"a": [], "b": []}})
        with pytest.raises(ValueError):
            validate_proof_bundle({**PROOF_BUNDLE, "headerBase64": None})
        with pytest.raises(ValueError):
            validate_proof_bundle([])


class TestBcs:
    @pytest.mark.parametrize(
        ("value", "encoded"),
        [(0, b"\x00"), (127, b"\x7f"), (128, b"\x80\x01"), (300, b"\xac\x02"), (16384, b"\x80\x80\x01")],
    )
    def test_uleb128(self, value: int, encoded: bytes) -> None:
        assert bcs.uleb128(value) == encoded

    def test_u64_little_endian(self) -> None:
        assert bcs.u64(1) == b"\x01" + b"\x00" * 7

    def test_string_is_length_prefixed(self) -> None:
        assert bcs.string("abc") == b"\x03abc"

    def test_nested_vector(self) -> None:
        assert bcs.vector([[1], []], lambda row: bcs.vector(row, bcs.u8)) == b"\x02\x01\x01\x00"

    def test_out_of_range_rejected(self) -> None:
        with pytest.raises(ValueError):
            bcs.u8(256)
        with pytest.raises(ValueError):
            bcs.u64(-1)
        with pytest.raises(ValueError):
            bcs.uleb128(-1)
